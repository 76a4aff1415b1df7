"""
Seasons module: named play periods. Groups and battlepasses are scoped to a season.
"""
