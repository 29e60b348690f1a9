"""
Shared test helpers.

Constants and timestamp helpers used by fixtures and tests alike.
"""

from datetime import datetime, timedelta, timezone

TEST_PASSWORD = "Passw0rd123"


def naive_utc(**delta) -> datetime:
    """Naive UTC timestamp offset from now, as FreeRADIUS stores them."""
    return (datetime.now(timezone.utc) + timedelta(**delta)).replace(tzinfo=None)


# Fixed day used by the bucketed history fixture
HISTORY_DAY = datetime(2026, 3, 10, tzinfo=timezone.utc)
