"""
Connection Manager - per-request database handles.

This module turns resolved connection parameters into a live handle that a
single request owns for its duration.

Features:
- One SQLAlchemy engine (connection pool) per full parameter set, so a pooled
  handle is never reused for different credentials
- Per-session slots: when a session switches to new parameters, the engine
  it used before is disposed unless another session still uses it
- Driver-specific connect options applied here, not by callers
- A process-wide cap on open handles (ConnectionLimiter)
- Idle engine cleanup
"""
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Hashable, Optional, Union

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import ArgumentError, NoSuchModuleError, SQLAlchemyError

from cloudview.core.config import Settings, get_settings
from cloudview.core.exceptions import DatabaseConnectionError, UnsupportedDriver
from cloudview.core.limits import ConnectionLimiter
from cloudview.core.logging_config import get_logger
from cloudview.database.credentials import ConnectionParameters
from cloudview.database.drivers import DriverStrategy, driver_for_dialect, get_driver

logger = get_logger(__name__)

DEFAULT_KEY = "default"

EngineKey = Union[ConnectionParameters, str]


@dataclass
class EngineEntry:
    """A cached engine and the strategy for the engine it talks to."""
    key: Hashable
    engine: Engine
    driver: DriverStrategy
    created_at: datetime = field(default_factory=datetime.utcnow)
    last_used: datetime = field(default_factory=datetime.utcnow)

    def is_expired(self, timeout_minutes: int) -> bool:
        """Check if the engine has been idle for too long."""
        return datetime.utcnow() > self.last_used + timedelta(minutes=timeout_minutes)

    def touch(self) -> None:
        self.last_used = datetime.utcnow()


class ResolvedConnection:
    """
    An open handle tagged with its driver strategy.

    Owned by exactly one request. close() is idempotent and returns both the
    pooled DBAPI connection and the limiter permit.

    Example:
        >>> with manager.open(parameters) as resolved:
        ...     resolved.driver.list_table_names(resolved.connection)
    """

    def __init__(
        self,
        connection: Connection,
        driver: DriverStrategy,
        parameters: Optional[ConnectionParameters],
        on_close: Optional[Callable[[], None]] = None
    ):
        self.connection = connection
        self.driver = driver
        self.parameters = parameters
        self._on_close = on_close
        self._lock = threading.Lock()
        self._closed = False

    @property
    def is_default(self) -> bool:
        return self.parameters is None

    @property
    def closed(self) -> bool:
        return self._closed

    def describe(self) -> str:
        if self.parameters is None:
            return f"default ({self.driver.name})"
        return self.parameters.describe()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True

        try:
            self.connection.close()
        except SQLAlchemyError as e:
            logger.error(f"Error closing connection to {self.describe()}: {e}")
        finally:
            if self._on_close is not None:
                self._on_close()

    def __enter__(self) -> "ResolvedConnection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ConnectionManager:
    """
    Opens request-scoped handles over a cache of per-credential engines.

    Thread-safe: FastAPI runs sync dependencies and streaming iterators in
    worker threads, so engine and slot bookkeeping happens under a lock.
    """

    def __init__(self, settings: Settings, limiter: Optional[ConnectionLimiter] = None):
        self.settings = settings
        self.limiter = limiter or ConnectionLimiter(
            max_connections=settings.max_connections,
            acquire_timeout=settings.acquire_timeout_seconds,
        )
        self._engines: Dict[Hashable, EngineEntry] = {}
        self._slots: Dict[str, Hashable] = {}
        self._lock = threading.Lock()
        logger.info("ConnectionManager initialized")

    def open(
        self,
        parameters: Optional[ConnectionParameters],
        slot: Optional[str] = None
    ) -> ResolvedConnection:
        """
        Open a handle for the given parameters (None = default connection).

        Args:
            parameters: Resolved connection parameters, or None
            slot: Session identifier the handle is opened for

        Returns:
            ResolvedConnection owned by the caller, who must close it

        Raises:
            UnsupportedDriver: If SQLAlchemy cannot load the driver
            ValidationError: If the parameters cannot form a URL
            ConnectionLimitExceeded: If no handle slot frees up in time
            DatabaseConnectionError: If the engine is unreachable or rejects us
        """
        key: EngineKey = parameters if parameters is not None else DEFAULT_KEY
        entry = self._bind(slot, key, parameters)

        self.limiter.acquire()
        try:
            connection = entry.engine.connect()
        except SQLAlchemyError as e:
            self.limiter.release()
            logger.error(f"Connection failed for {self._describe(key)}: {e}")
            raise DatabaseConnectionError() from e
        except BaseException:
            self.limiter.release()
            raise

        logger.debug(f"Opened connection to {self._describe(key)} for slot {slot or '-'}")
        return ResolvedConnection(connection, entry.driver, parameters, on_close=self.limiter.release)

    def release_slot(self, slot: str) -> bool:
        """
        Forget which parameters a session used.

        Returns:
            True if the slot was bound
        """
        with self._lock:
            key = self._slots.pop(slot, None)
            if key is None:
                return False
            self._dispose_if_unreferenced(key)
            return True

    def check_default(self) -> bool:
        """Readiness check for the default connection."""
        try:
            with self.open(None) as resolved:
                resolved.connection.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Default connection check failed: {type(e).__name__}")
            return False

    def stats(self) -> Dict[str, int]:
        with self._lock:
            engines = len(self._engines)
            slots = len(self._slots)
        return {
            "engines": engines,
            "sessions": slots,
            "connections_in_use": self.limiter.in_use,
            "max_connections": self.limiter.limit,
            "rejected": self.limiter.rejected,
        }

    def close_all(self) -> None:
        """Dispose every cached engine. Used at shutdown."""
        with self._lock:
            entries = list(self._engines.values())
            self._engines.clear()
            self._slots.clear()

        for entry in entries:
            self._dispose(entry)
        logger.info(f"Disposed {len(entries)} engines")

    def _bind(
        self,
        slot: Optional[str],
        key: EngineKey,
        parameters: Optional[ConnectionParameters]
    ) -> EngineEntry:
        with self._lock:
            self._dispose_idle()

            entry = self._engines.get(key)
            if entry is None:
                entry = self._create_entry(key, parameters)
                self._engines[key] = entry
            entry.touch()

            if slot is not None:
                previous = self._slots.get(slot)
                self._slots[slot] = key
                if previous is not None and previous != key:
                    logger.info(f"Session {slot[:8]} switched to {self._describe(key)}")
                    self._dispose_if_unreferenced(previous)

            return entry

    def _create_entry(self, key: EngineKey, parameters: Optional[ConnectionParameters]) -> EngineEntry:
        if parameters is None:
            url = make_url(self.settings.database_url)
            driver = driver_for_dialect(url.get_backend_name())
            # Options spelled out in DATABASE_URL take precedence
            connect_args = {
                name: value
                for name, value in driver.connect_args(self.settings).items()
                if name not in url.query
            }
        else:
            driver = get_driver(parameters.driver)
            url = driver.build_url(parameters, self.settings)
            connect_args = driver.connect_args(self.settings)

        options = {
            "pool_pre_ping": True,
            "pool_recycle": 3600,
            "connect_args": connect_args,
        }
        if url.get_backend_name() != "sqlite":
            options.update(pool_size=3, max_overflow=5)

        try:
            engine = create_engine(url, **options)
        except (NoSuchModuleError, ImportError) as e:
            logger.error(f"Cannot load driver for {self._describe(key)}: {e}")
            raise UnsupportedDriver(parameters.driver if parameters else url.drivername) from e
        except (ArgumentError, TypeError) as e:
            logger.error(f"Invalid connection options for {self._describe(key)}: {e}")
            raise DatabaseConnectionError() from e

        logger.info(f"Created engine for {self._describe(key)}")
        return EngineEntry(key=key, engine=engine, driver=driver)

    def _dispose_if_unreferenced(self, key: Hashable) -> None:
        # Caller holds the lock
        if key == DEFAULT_KEY or key in self._slots.values():
            return
        entry = self._engines.pop(key, None)
        if entry is not None:
            self._dispose(entry)

    def _dispose_idle(self) -> None:
        # Caller holds the lock
        idle = [
            key for key, entry in self._engines.items()
            if key != DEFAULT_KEY and entry.is_expired(self.settings.engine_idle_minutes)
        ]
        for key in idle:
            logger.info(f"Disposing idle engine for {self._describe(key)}")
            self._slots = {slot: bound for slot, bound in self._slots.items() if bound != key}
            self._dispose(self._engines.pop(key))

    def _dispose(self, entry: EngineEntry) -> None:
        # Checked-out connections stay usable; they are closed when returned
        try:
            entry.engine.dispose()
        except SQLAlchemyError as e:
            logger.error(f"Error disposing engine for {self._describe(entry.key)}: {e}")

    @staticmethod
    def _describe(key: Hashable) -> str:
        if isinstance(key, ConnectionParameters):
            return key.describe()
        return str(key)


# Global singleton instance
_connection_manager: Optional[ConnectionManager] = None
_manager_lock = threading.Lock()


def get_connection_manager() -> ConnectionManager:
    """
    Get or create the global ConnectionManager instance.

    Returns:
        ConnectionManager singleton
    """
    global _connection_manager
    with _manager_lock:
        if _connection_manager is None:
            _connection_manager = ConnectionManager(get_settings())
        return _connection_manager


def reset_connection_manager() -> None:
    """Dispose and drop the singleton (application shutdown, tests)."""
    global _connection_manager
    with _manager_lock:
        if _connection_manager is not None:
            _connection_manager.close_all()
        _connection_manager = None
