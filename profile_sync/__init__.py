"""
profile-sync: backfill subscription fields on analytics profiles from the
operational database.
"""

__version__ = "1.0.0"
