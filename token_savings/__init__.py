"""
Token Savings.

Tracks how many tokens wrapped commands save and reports the savings by
day, week and month.
"""

__version__ = "0.1.0"
