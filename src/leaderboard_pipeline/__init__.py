"""
Leaderboard Pipeline.

Fetches affiliate wagering leaderboards, normalizes them into one canonical
schema and writes a JSON snapshot per source for the front-end.
"""

__version__ = "0.1.0"
