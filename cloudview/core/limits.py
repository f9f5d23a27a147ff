"""
Connection Limiter - cap on simultaneously open database handles.

Every request that talks to a target database holds one permit for as long
as its handle is checked out (for exports, until the stream is closed).
Requests that cannot get a permit within the acquire timeout fail fast with
ConnectionLimitExceeded instead of queueing without bound.

For multiple worker processes, each process gets its own limit.
"""
import threading
from typing import Optional

from cloudview.core.exceptions import ConnectionLimitExceeded
from cloudview.core.logging_config import get_logger

logger = get_logger(__name__)


class ConnectionLimiter:
    """
    Bounded semaphore with timeout and usage counters.

    Example:
        >>> limiter = ConnectionLimiter(max_connections=2, acquire_timeout=0.1)
        >>> limiter.acquire()
        >>> limiter.in_use
        1
        >>> limiter.release()
    """

    def __init__(self, max_connections: int = 20, acquire_timeout: float = 5.0):
        """
        Initialize the limiter.

        Args:
            max_connections: Maximum handles open at the same time
            acquire_timeout: Seconds to wait for a free permit
        """
        if max_connections < 1:
            raise ValueError("max_connections must be at least 1")

        self.limit = max_connections
        self.acquire_timeout = acquire_timeout

        self._semaphore = threading.BoundedSemaphore(max_connections)
        self._lock = threading.Lock()
        self._in_use = 0
        self._rejected = 0

        logger.info(f"ConnectionLimiter initialized: {max_connections} concurrent connections")

    def acquire(self, timeout: Optional[float] = None) -> None:
        """
        Take a permit, waiting up to the acquire timeout.

        Raises:
            ConnectionLimitExceeded: If no permit frees up in time
        """
        wait = self.acquire_timeout if timeout is None else timeout
        if not self._semaphore.acquire(timeout=wait):
            with self._lock:
                self._rejected += 1
            logger.warning(f"Connection limit reached: {self.limit} handles in use")
            raise ConnectionLimitExceeded(self.limit, wait)

        with self._lock:
            self._in_use += 1

    def release(self) -> None:
        with self._lock:
            if self._in_use == 0:
                logger.error("ConnectionLimiter.release() called with no permit held")
                return
            self._in_use -= 1
        self._semaphore.release()

    @property
    def in_use(self) -> int:
        with self._lock:
            return self._in_use

    @property
    def rejected(self) -> int:
        with self._lock:
            return self._rejected
