"""
Central constants (shared enumerations) for the ZV application.
"""
from __future__ import annotations

# Roles, lowest to highest rank
ROLE_PLAYER = "PLAYER"
ROLE_MASTER = "MASTER"
ROLE_MODERATOR = "MODERATOR"
ROLE_SUPERADMIN = "SUPERADMIN"
ROLES = (ROLE_PLAYER, ROLE_MASTER, ROLE_MODERATOR, ROLE_SUPERADMIN)
ROLE_RANK = {role: i for i, role in enumerate(ROLES)}
ADMIN_ROLES = frozenset({ROLE_MODERATOR, ROLE_SUPERADMIN})

GAME_FORMATS = ("ONLINE", "OFFLINE", "MIXED")
MEMBER_STATUSES = ("ACTIVE", "PAUSED", "LEFT")
APPLICATION_STATUSES = ("PENDING", "APPROVED", "REJECTED", "WITHDRAWN")
RPG_EXPERIENCE = ("NOVICE", "INTERMEDIATE", "VETERAN")

PRODUCT_TYPES = ("BATTLEPASS", "MERCH", "ADDON")
ORDER_STATUSES = ("PENDING", "PAID", "CANCELLED", "REFUNDED")
PAYMENT_PROVIDERS = ("YOOKASSA", "MANUAL")

# Redemption order: single games are spent before bundles, bundles before the season pass
BATTLEPASS_KINDS = ("SINGLE", "FOUR", "SEASON")
BATTLEPASS_STATUSES = ("ACTIVE", "EXPIRED", "USED_UP")

REPORT_STATUSES = ("PENDING", "APPROVED", "REJECTED", "CANCELLED")

NOTIFICATION_TYPES = ("INFO", "SUCCESS", "WARNING", "ERROR")
NOTIFICATION_RELATED_TYPES = ("REPORT", "BATTLEPASS", "GROUP", "SESSION", "ORDER")

ADMIN_PAGE_SIZES = (10, 20, 50, 100)
