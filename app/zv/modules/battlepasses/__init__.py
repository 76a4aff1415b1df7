"""
Battlepasses module.

A battlepass grants a bounded number of game uses. Each consumed use is a writeoff row
keyed by (user, session) or (user, report), which makes redemption idempotent.
"""
