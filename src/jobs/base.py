"""
Job Queue Interface

Callers only see submit(). Whether the job lands on the Redis broker or in
an in-process queue is decided once at startup by JobQueueFactory.
"""

from abc import ABC, abstractmethod

from src.modules.stickers.models import JobDescriptor


class IJobQueue(ABC):
    """Fire-and-forget scheduling of sticker jobs."""

    mode: str = "unknown"

    @abstractmethod
    def submit(self, descriptor: JobDescriptor) -> None:
        """
        Schedule a job for asynchronous, throughput-limited processing.

        Never raises to the caller; failures are handled inside the queue.
        """
        pass

    def ping(self) -> bool:
        """Check that the backing infrastructure is reachable."""
        return True

    def shutdown(self) -> None:
        """Stop local workers, if any."""
        pass
