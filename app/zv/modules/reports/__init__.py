"""
Reports module.

A master files a report after a game session listing the players who attended.
Moderators approve (writing off one battlepass use per player) or reject with a reason.
A superadmin may cancel an approved report, which returns the written-off uses.
"""
