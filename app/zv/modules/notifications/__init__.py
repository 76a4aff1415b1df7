"""
Notifications module: per-user inbox messages raised by other modules.
"""
