"""
Per-identity daily quota.

Usage records live in process memory, one per identity, and reset lazily
when the stored date differs from today. Each identity has its own lock so
that two simultaneous events from the same sender cannot both consume the
last slot, while unrelated identities never contend.
"""

import threading
from datetime import date, datetime
from typing import Callable, Dict, Optional
from zoneinfo import ZoneInfo

from src.core.logging import get_logger
from src.modules.stickers.models import UsageRecord

logger = get_logger(__name__)


def make_today(
    timezone_name: Optional[str] = None,
    now: Callable[[ZoneInfo], datetime] = datetime.now,
) -> Callable[[], date]:
    """Return a clock giving today's date in the named zone (local time if None)."""
    if timezone_name is None:
        return date.today
    tz = ZoneInfo(timezone_name)
    return lambda: now(tz).date()


class RateLimiter:
    def __init__(self, today: Optional[Callable[[], date]] = None):
        self._today = today or date.today
        self._records: Dict[str, UsageRecord] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, identity: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(identity)
            if lock is None:
                lock = self._locks[identity] = threading.Lock()
            return lock

    def check_and_consume(self, identity: str, limit: int) -> bool:
        """
        Consume one unit of the identity's daily quota.

        Returns:
            False if the identity is already at or above `limit` today
            (nothing is consumed), True otherwise.
        """
        with self._lock_for(identity):
            today = self._today()
            record = self._records.get(identity)
            if record is None or record.date != today:
                record = UsageRecord(identity=identity, date=today)
                self._records[identity] = record

            if record.count >= limit:
                logger.info("daily_limit_reached", identity=identity, limit=limit)
                return False

            record.count += 1
            return True

    def usage(self, identity: str) -> Optional[UsageRecord]:
        """Current record for the identity, if any."""
        return self._records.get(identity)
