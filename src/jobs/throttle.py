"""
Throughput ceilings for job processing.

Both throttles hand out a single processing slot and space consecutive
job starts by at least `min_interval` seconds. IntervalThrottle works
inside one process; RedisThrottle coordinates every worker process that
shares the broker.
"""

import time
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from redis import Redis
from redis.exceptions import LockError

from src.core.exceptions import QueueUnavailableError
from src.core.logging import get_logger

logger = get_logger(__name__)


class IntervalThrottle:
    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_start: Optional[float] = None

    @contextmanager
    def slot(self) -> Iterator[None]:
        with self._lock:
            if self._last_start is not None:
                wait = self._last_start + self.min_interval - self._clock()
                if wait > 0:
                    self._sleep(wait)
            self._last_start = self._clock()
            yield


class RedisThrottle:
    """
    Cluster-wide slot backed by Redis.

    A Redis lock holds the single active slot. A `SET NX PX` key marks the
    last job start and expires after `min_interval`; while it exists no
    new job may start.

    Waiting for the slot gives up after `acquire_timeout` seconds so a
    stuck holder cannot pin every worker until its task time limit.
    """

    def __init__(
        self,
        client: Redis,
        name: str,
        min_interval: float,
        lock_timeout: int = 600,
        acquire_timeout: Optional[float] = None,
        poll_interval: float = 0.05,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.min_interval = min_interval
        self.lock_timeout = lock_timeout
        self.acquire_timeout = acquire_timeout
        self.poll_interval = poll_interval
        self._sleep = sleep
        self.lock_key = f"{name}:active"
        self.start_key = f"{name}:last-start"

    def _wait_for_interval(self):
        interval_ms = int(self.min_interval * 1000)
        if interval_ms <= 0:
            return
        while not self.client.set(self.start_key, "1", nx=True, px=interval_ms):
            ttl_ms = self.client.pttl(self.start_key)
            self._sleep(ttl_ms / 1000 if ttl_ms and ttl_ms > 0 else self.poll_interval)

    @contextmanager
    def slot(self) -> Iterator[None]:
        lock = self.client.lock(self.lock_key, timeout=self.lock_timeout)
        if not lock.acquire(blocking=True, blocking_timeout=self.acquire_timeout):
            raise QueueUnavailableError(
                f"Timed out after {self.acquire_timeout}s waiting for the processing slot"
            )
        try:
            self._wait_for_interval()
            yield
        finally:
            try:
                lock.release()
            except LockError as e:
                # Lock expired while the job ran past lock_timeout
                logger.warning("throttle_lock_release_failed", lock=self.lock_key, error=str(e))
