# src/typed_pgmq/connection.py
"""
Command provisioning for the PGMQ clients.

A client holds one connection source:

- :class:`OwnedConnection`: a connection string. Every command opens a new
  connection from it and closes that connection when the command is closed.
- :class:`BorrowedConnection`: a connection supplied by the caller. Every
  command runs on it and leaves it open, so the caller can keep using it,
  for example inside their own transaction.

Commands are context managers; leaving the ``with`` block releases an owned
connection on every exit path. Driver errors raised while opening a
connection or running a statement propagate unchanged; the calling
operation wraps them.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

import asyncpg
import psycopg
from psycopg.rows import dict_row, tuple_row

from typed_pgmq.errors import PGMQConfigurationError


@dataclass(frozen=True)
class OwnedConnection:
    """Open a fresh connection from ``dsn`` for each command, close it afterwards."""

    dsn: str
    connect_kwargs: Dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class BorrowedConnection:
    """Run every command on the caller's ``connection``; never close it."""

    connection: Any


ConnectionSource = Union[OwnedConnection, BorrowedConnection]


class AsyncCommand:
    """One statement bound to an open asyncpg connection."""

    def __init__(self, sql: str, connection: asyncpg.Connection, owns_connection: bool):
        self.sql = sql
        self.connection = connection
        self.owns_connection = owns_connection

    async def fetch(self, *args, timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        rows = await self.connection.fetch(self.sql, *args, timeout=timeout)
        return [dict(row) for row in rows]

    async def fetchval(self, *args, timeout: Optional[float] = None) -> Any:
        return await self.connection.fetchval(self.sql, *args, timeout=timeout)

    async def execute(self, *args, timeout: Optional[float] = None) -> None:
        await self.connection.execute(self.sql, *args, timeout=timeout)

    async def close(self) -> None:
        if self.owns_connection and not self.connection.is_closed():
            await self.connection.close()

    async def __aenter__(self) -> "AsyncCommand":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class AsyncCommandFactory:
    """Produce :class:`AsyncCommand` objects from a connection source."""

    def __init__(
        self,
        source: Optional[ConnectionSource],
        connect: Optional[Callable[..., Any]] = None,
    ):
        self.source = source
        self._connect = connect

    async def open_connection(self, timeout: Optional[float] = None) -> asyncpg.Connection:
        """Return the connection a command should run on, opening it if owned."""
        if isinstance(self.source, BorrowedConnection):
            connection = self.source.connection
            if connection.is_closed():
                raise PGMQConfigurationError(
                    "The supplied connection is closed; asyncpg connections cannot be reopened."
                )
            return connection
        if isinstance(self.source, OwnedConnection):
            kwargs = dict(self.source.connect_kwargs)
            if timeout is not None:
                kwargs["timeout"] = timeout
            connect = self._connect or asyncpg.connect
            return await connect(self.source.dsn, **kwargs)
        raise PGMQConfigurationError("No connection or connection string provided.")

    async def create(self, sql: str, timeout: Optional[float] = None) -> AsyncCommand:
        connection = await self.open_connection(timeout=timeout)
        return AsyncCommand(
            sql, connection, owns_connection=isinstance(self.source, OwnedConnection)
        )


class Command:
    """One statement bound to an open psycopg connection."""

    def __init__(self, sql: str, connection: psycopg.Connection, owns_connection: bool):
        self.sql = sql
        self.connection = connection
        self.owns_connection = owns_connection

    def fetch(self, *args) -> List[Dict[str, Any]]:
        with self.connection.cursor(row_factory=dict_row) as cur:
            cur.execute(self.sql, args or None)
            return cur.fetchall()

    def fetchval(self, *args) -> Any:
        with self.connection.cursor(row_factory=tuple_row) as cur:
            cur.execute(self.sql, args or None)
            row = cur.fetchone()
        return None if row is None else row[0]

    def execute(self, *args) -> None:
        self.connection.execute(self.sql, args or None)

    def close(self) -> None:
        if self.owns_connection and not self.connection.closed:
            self.connection.close()

    def __enter__(self) -> "Command":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class CommandFactory:
    """Produce :class:`Command` objects from a connection source."""

    def __init__(
        self,
        source: Optional[ConnectionSource],
        connect: Optional[Callable[..., Any]] = None,
    ):
        self.source = source
        self._connect = connect

    def open_connection(self) -> psycopg.Connection:
        if isinstance(self.source, BorrowedConnection):
            connection = self.source.connection
            if connection.closed:
                raise PGMQConfigurationError(
                    "The supplied connection is closed; psycopg connections cannot be reopened."
                )
            return connection
        if isinstance(self.source, OwnedConnection):
            kwargs = {"autocommit": True}
            kwargs.update(self.source.connect_kwargs)
            connect = self._connect or psycopg.connect
            return connect(self.source.dsn, **kwargs)
        raise PGMQConfigurationError("No connection or connection string provided.")

    def create(self, sql: str) -> Command:
        connection = self.open_connection()
        return Command(
            sql, connection, owns_connection=isinstance(self.source, OwnedConnection)
        )
