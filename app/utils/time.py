"""
Time utilities.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form stored in sqlite."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def aware_utcnow() -> datetime:
    """Current UTC time with tzinfo, for scheduler run dates."""
    return datetime.now(timezone.utc)
