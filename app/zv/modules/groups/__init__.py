"""
Groups module.

A group is a recurring table run by one master within a season:
- players join by referral code or by applying (master approves/rejects)
- membership is capped by max_members; full groups refuse joins and approvals
- the master schedules game sessions for the group
"""
