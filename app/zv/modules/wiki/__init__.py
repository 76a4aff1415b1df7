"""
Wiki module.

Sections form a tree; articles live in a section and carry a minimum role
(PLAYER < MASTER < MODERATOR < SUPERADMIN) below which they are invisible.
Only moderators and superadmins edit content; any reader may comment.
"""
