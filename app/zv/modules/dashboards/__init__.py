"""
Dashboards module: per-role JSON summaries for the front-end home screens.
"""
