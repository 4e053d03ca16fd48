import functools
import os
import unittest
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import psycopg

from typed_pgmq import PGMQConfig

# Configuration matches the docker-compose setup used for development
PG_HOST = os.getenv("PG_HOST", "localhost")
PG_PORT = os.getenv("PG_PORT", "5432")
PG_DATABASE = os.getenv("PG_DATABASE", "postgres")
PG_USERNAME = os.getenv("PG_USERNAME", "postgres")
PG_PASSWORD = os.getenv("PG_PASSWORD", "postgres")

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


@dataclass
class Order:
    order_id: int
    customer: str
    placed_at: datetime
    note: Optional[str] = None


def db_config() -> PGMQConfig:
    return PGMQConfig(
        host=PG_HOST,
        port=PG_PORT,
        database=PG_DATABASE,
        username=PG_USERNAME,
        password=PG_PASSWORD,
        verbose=False,  # Keep test output clean
    )


@functools.lru_cache(maxsize=None)
def database_available() -> bool:
    """True when a PGMQ-capable database answers on the PG_* settings."""
    try:
        with psycopg.connect(db_config().dsn, connect_timeout=2, autocommit=True) as conn:
            conn.execute("CREATE EXTENSION IF NOT EXISTS pgmq CASCADE;")
    except psycopg.Error:
        return False
    return True


def queue_name(prefix: str = "test") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:8]}"


def message_row(msg_id: int = 1, message: Optional[str] = '{"hello": "world"}', read_ct: int = 1):
    return {
        "msg_id": msg_id,
        "read_ct": read_ct,
        "enqueued_at": NOW,
        "vt": NOW,
        "message": message,
    }


def metrics_row(queue: str = "orders", **extra):
    row = {
        "queue_name": queue,
        "queue_length": 3,
        "newest_msg_age_sec": 1,
        "oldest_msg_age_sec": 4,
        "total_messages": 5,
        "scrape_time": NOW,
    }
    row.update(extra)
    return row


class FakeAsyncTransaction:
    """Stands in for ``asyncpg.transaction.Transaction`` as a context manager."""

    def __init__(self):
        self.entered = False
        self.exit_exc_type = None

    async def __aenter__(self):
        self.entered = True
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.exit_exc_type = exc_type
        return False


class FakeTransaction:
    """Stands in for ``psycopg.Transaction`` as a context manager."""

    def __init__(self):
        self.entered = False
        self.exit_exc_type = None

    def __enter__(self):
        self.entered = True
        return self

    def __exit__(self, exc_type, exc, tb):
        self.exit_exc_type = exc_type
        return False


def fake_async_connection(rows=None, value=None):
    """An asyncpg-shaped connection whose statements return canned results."""
    conn = MagicMock()
    conn.is_closed = MagicMock(return_value=False)
    conn.fetch = AsyncMock(return_value=rows if rows is not None else [])
    conn.fetchval = AsyncMock(return_value=value)
    conn.execute = AsyncMock(return_value="SELECT 1")
    conn.close = AsyncMock()
    conn.tx = FakeAsyncTransaction()
    conn.transaction = MagicMock(return_value=conn.tx)
    return conn


def fake_connection(rows=None, value=None):
    """A psycopg-shaped connection whose cursor returns canned results."""
    conn = MagicMock()
    conn.closed = False
    cursor = MagicMock()
    cursor.fetchall.return_value = rows if rows is not None else []
    cursor.fetchone.return_value = None if value is None else (value,)
    conn.cursor.return_value.__enter__.return_value = cursor
    conn.cursor.return_value.__exit__.return_value = False
    conn.cur = cursor
    conn.tx = FakeTransaction()
    conn.transaction = MagicMock(return_value=conn.tx)
    return conn


def requires_database(cls):
    """Skip a live-database test case when no PGMQ database is reachable."""
    return unittest.skipUnless(
        database_available(),
        f"No PGMQ database reachable at {PG_HOST}:{PG_PORT}",
    )(cls)
