"""
Profiles module.

Players and masters keep a role-specific profile next to the shared user record:
- a player profile (nickname, notes) is created on registration or on first use
- a master profile (bio, format, location) is required before a master can run groups
"""
