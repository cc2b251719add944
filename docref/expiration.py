"""TTL handling for docref records."""

import datetime as _dt
import math
from typing import Optional

from .utils import normalize_ttl

# Field the backend's TTL index (reaper) watches.
EXPIRE_FIELD = "expireAt"


def utcnow() -> _dt.datetime:
    return _dt.datetime.now(_dt.timezone.utc)


def _as_aware(moment: _dt.datetime) -> _dt.datetime:
    # pymongo hands back naive datetimes in UTC unless the client is tz_aware
    if moment.tzinfo is None:
        return moment.replace(tzinfo=_dt.timezone.utc)
    return moment


class ExpirationPolicy:
    """
    Converts relative TTLs to absolute expiry instants and back.

    Records are only ever removed physically by the backend (a MongoDB TTL
    index, or the memory backend's lazy sweep); this class just computes the
    values stored in ``expireAt`` and reads them back.
    """

    field = EXPIRE_FIELD

    def expire_at(self, ttl: int) -> Optional[_dt.datetime]:
        """Return now + ttl seconds, or None when ttl <= 0 (no expiry)."""
        ttl = normalize_ttl(ttl)
        if not ttl:
            return None
        return utcnow() + _dt.timedelta(seconds=ttl)

    def remaining(self, expire_at: Optional[_dt.datetime]) -> int:
        """Whole seconds left until expire_at, floored and never negative. 0 for no expiry."""
        if not isinstance(expire_at, _dt.datetime):
            return 0
        seconds = (_as_aware(expire_at) - utcnow()).total_seconds()
        return max(0, math.floor(seconds))

    def is_expired(self, expire_at: Optional[_dt.datetime]) -> bool:
        if not isinstance(expire_at, _dt.datetime):
            return False
        return _as_aware(expire_at) <= utcnow()
