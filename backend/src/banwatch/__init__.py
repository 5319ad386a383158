"""
Ranked Ban Watch.

Polls a ranked leaderboard API, tracks the sanction status of listed players
and announces bans, suspensions, restorations and account deletions.
"""

__version__ = "1.0.0"
