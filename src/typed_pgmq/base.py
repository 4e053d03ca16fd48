"""
Base configuration and shared behaviour for the sync and async PGMQ clients.
"""

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, List, Optional, Tuple
from urllib.parse import quote

from typed_pgmq import _sql
from typed_pgmq.codec import MessageCodec
from typed_pgmq.connection import BorrowedConnection, ConnectionSource, OwnedConnection
from typed_pgmq.errors import PGMQError, PGMQOperationError, PGMQUsageError
from typed_pgmq.logger import PGMQLogger, log_with_context


@dataclass
class PGMQConfig:
    """
    Configuration shared between sync and async PGMQ clients.

    Connection fields fall back to the PG_* environment variables, then to
    local defaults. Explicit values always win.
    """

    host: str = field(default_factory=lambda: os.getenv("PG_HOST", "localhost"))
    port: str = field(default_factory=lambda: os.getenv("PG_PORT", "5432"))
    database: str = field(default_factory=lambda: os.getenv("PG_DATABASE", "postgres"))
    username: str = field(default_factory=lambda: os.getenv("PG_USERNAME", "postgres"))
    password: str = field(default_factory=lambda: os.getenv("PG_PASSWORD", "postgres"))
    vt: int = 30
    read_limit: int = 10
    poll_timeout_seconds: int = 5
    poll_interval_ms: int = 250
    verbose: bool = False
    log_filename: Optional[str] = None
    structured_logging: bool = False
    use_loguru: bool = False
    log_rotation: bool = False
    log_rotation_size: str = "10 MB"
    log_retention: str = "1 week"

    def __post_init__(self) -> None:
        # Empty strings from the environment count as unset
        self.host = self.host or "localhost"
        self.port = str(self.port or "5432")
        self.database = self.database or "postgres"
        self.username = self.username or "postgres"
        self.password = self.password or "postgres"

        if self.vt < 0:
            raise PGMQUsageError("Default visibility timeout must not be negative.")
        if self.read_limit < 1:
            raise PGMQUsageError("Default read limit must be at least 1.")

    @property
    def dsn(self) -> str:
        """libpq key/value connection string, as psycopg expects."""
        return (
            f"host={self.host} "
            f"port={self.port} "
            f"dbname={self.database} "
            f"user={self.username} "
            f"password={self.password}"
        )

    @property
    def async_dsn(self) -> str:
        """postgresql:// URL, as asyncpg expects."""
        return (
            f"postgresql://{quote(self.username, safe='')}:{quote(self.password, safe='')}@"
            f"{self.host}:{self.port}/{quote(self.database, safe='')}"
        )


class BaseQueue:
    """
    Shared initialization and helpers for the queue clients.

    A client is built from exactly one connection source: a connection
    string (each call opens and closes its own connection) or an existing
    connection (used as-is and never closed by the client).
    """

    config: PGMQConfig
    logger: logging.Logger
    codec: MessageCodec

    def __init__(
        self,
        dsn: Optional[str] = None,
        *,
        connection: Any = None,
        config: Optional[PGMQConfig] = None,
        codec: Optional[MessageCodec] = None,
        **kwargs,
    ):
        if config is None:
            valid_fields = set(PGMQConfig.__dataclass_fields__.keys())
            unknown = set(kwargs) - valid_fields
            if unknown:
                raise TypeError(f"Unexpected keyword arguments: {sorted(unknown)}")
            config = PGMQConfig(**kwargs)
        elif kwargs:
            raise TypeError("Pass either a config object or config keyword arguments, not both.")

        self.config = config
        self.codec = codec or MessageCodec()
        self.source = self._resolve_source(dsn, connection)

        self.logger = PGMQLogger.get_logger(
            name=self.__class__.__module__,
            verbose=config.verbose,
            log_filename=config.log_filename,
            structured=config.structured_logging,
            use_loguru=config.use_loguru,
            enable_rotation=config.log_rotation,
            rotation=config.log_rotation_size if config.log_rotation else None,
            retention=config.log_retention if config.log_rotation else None,
        )

        log_with_context(
            self.logger,
            logging.DEBUG,
            f"{self.__class__.__name__} initialized",
            owns_connection=self.owns_connection,
        )

    @staticmethod
    def _resolve_source(dsn: Optional[str], connection: Any) -> ConnectionSource:
        if dsn is not None and connection is not None:
            raise PGMQUsageError("Pass either a connection string or a connection, not both.")
        if connection is not None:
            return BorrowedConnection(connection)
        if dsn:
            return OwnedConnection(dsn)
        raise PGMQUsageError("A connection string or a connection is required.")

    @classmethod
    def _dsn_from_config(cls, config: PGMQConfig) -> str:
        return config.dsn

    @classmethod
    def from_config(cls, config: Optional[PGMQConfig] = None, **kwargs):
        """Build a client that opens its own connections from ``config``."""
        config = config or PGMQConfig(**kwargs)
        return cls(cls._dsn_from_config(config), config=config)

    @property
    def owns_connection(self) -> bool:
        return isinstance(self.source, OwnedConnection)

    @contextmanager
    def _operation(self, operation: str, queue: Optional[str] = None, msg_id=None):
        """Re-raise any driver or server failure as PGMQOperationError."""
        try:
            yield
        except PGMQError:
            raise
        except Exception as e:
            log_with_context(
                self.logger,
                logging.ERROR,
                f"Operation failed: {operation}",
                queue=queue,
                msg_id=msg_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise PGMQOperationError(operation, e, queue=queue, msg_id=msg_id) from e

    @staticmethod
    def _require_queue(queue: str) -> str:
        if not isinstance(queue, str) or not queue:
            raise PGMQUsageError("Queue name must be a non-empty string.")
        return queue

    @staticmethod
    def _msg_ids(msg_ids: Iterable[int]) -> List[int]:
        try:
            return [int(msg_id) for msg_id in msg_ids]
        except (TypeError, ValueError) as e:
            raise PGMQUsageError(f"Message ids must be integers: {e}", e) from e

    def _vt(self, vt: Optional[int]) -> int:
        return self.config.vt if vt is None else vt

    def _limit(self, limit: Optional[int]) -> int:
        return self.config.read_limit if limit is None else limit

    def _poll_args(
        self, poll_timeout_seconds: Optional[int], poll_interval_ms: Optional[int]
    ) -> Tuple[int, int]:
        if poll_timeout_seconds is None:
            poll_timeout_seconds = self.config.poll_timeout_seconds
        if poll_interval_ms is None:
            poll_interval_ms = self.config.poll_interval_ms
        if poll_timeout_seconds < 0 or poll_interval_ms <= 0:
            raise PGMQUsageError(
                "Poll timeout must not be negative and poll interval must be positive."
            )
        return poll_timeout_seconds, poll_interval_ms

    @staticmethod
    def _send_sql(delay, batch: bool = False) -> Tuple[str, list]:
        """
        Pick the send statement for ``delay`` and return it with the delay
        parameter(s) to append.

        ``delay`` is None, a relative delay (int seconds or timedelta) or an
        absolute visibility time (datetime).
        """
        get_sql = _sql.get_send_batch_sql if batch else _sql.get_send_sql
        if delay is None:
            return get_sql(), []
        if isinstance(delay, datetime):
            return get_sql(delay=True, delay_is_timestamp=True), [delay]
        if isinstance(delay, timedelta):
            seconds = int(delay.total_seconds())
        elif isinstance(delay, int) and not isinstance(delay, bool):
            seconds = delay
        else:
            raise PGMQUsageError(
                "delay must be seconds (int or timedelta) or a datetime, "
                f"not {type(delay).__name__}."
            )
        if seconds < 0:
            raise PGMQUsageError("A relative delay must not be negative.")
        return get_sql(delay=True), [seconds]
