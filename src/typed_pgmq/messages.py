# src/typed_pgmq/messages.py
"""
Dataclasses representing PGMQ result rows.

Rows are addressed by column name, never by position, so that a result set
whose column list grows between extension versions still maps cleanly.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, Mapping, NamedTuple, Optional, TypeVar

from typed_pgmq.codec import MessageCodec, default_codec
from typed_pgmq.errors import PGMQInvariantError

T = TypeVar("T")

# Sentinel for metrics columns the connected extension does not report
NOT_AVAILABLE = -1

_VERSION_RE = re.compile(r"^\s*(\d+)(?:\.(\d+))?(?:\.(\d+))?")


@dataclass
class Message(Generic[T]):
    """
    A message read from a queue.

    Attributes:
        msg_id: Unique ID of the message within its queue
        read_ct: Number of times the message has been read
        enqueued_at: Timestamp when the message was sent
        vt: Timestamp when the message becomes visible to readers again
        message: The decoded payload
    """

    msg_id: int
    read_ct: int
    enqueued_at: datetime
    vt: datetime
    message: Optional[T]

    @classmethod
    def from_row(
        cls,
        row: Mapping[str, Any],
        message_type: Optional[type] = None,
        codec: MessageCodec = default_codec,
    ) -> "Message[T]":
        return cls(
            msg_id=row["msg_id"],
            read_ct=row["read_ct"],
            enqueued_at=row["enqueued_at"],
            vt=row["vt"],
            message=codec.decode(row["message"], message_type),
        )

    def __repr__(self) -> str:
        return (
            f"Message(msg_id={self.msg_id}, read_ct={self.read_ct}, "
            f"enqueued_at={self.enqueued_at.isoformat()}, "
            f"message={self.message!r})"
        )


@dataclass
class QueueRecord:
    """
    Queue metadata as listed by pgmq.list_queues().

    Attributes:
        queue_name: Name of the queue
        created_at: When the queue was created
        is_partitioned: Whether the queue uses table partitioning
        is_unlogged: Whether the queue uses unlogged tables
    """

    queue_name: str
    created_at: datetime
    is_partitioned: bool = False
    is_unlogged: bool = False

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "QueueRecord":
        return cls(
            queue_name=row["queue_name"],
            created_at=row["created_at"],
            is_partitioned=bool(row.get("is_partitioned", False)),
            is_unlogged=bool(row.get("is_unlogged", False)),
        )

    def __str__(self) -> str:
        return self.queue_name


@dataclass
class QueueMetrics:
    """
    Point-in-time statistics for one queue.

    Attributes:
        queue_name: Name of the queue
        queue_length: Messages currently in the queue
        newest_msg_age_sec: Age of the newest message in seconds (None if empty)
        oldest_msg_age_sec: Age of the oldest message in seconds (None if empty)
        total_messages: Messages ever sent to this queue
        scrape_time: When these metrics were collected
        queue_visible_length: Messages currently visible, or -1 when the
            extension predates this column (added in PGMQ 1.5.0)
    """

    queue_name: str
    queue_length: int
    newest_msg_age_sec: Optional[int]
    oldest_msg_age_sec: Optional[int]
    total_messages: int
    scrape_time: datetime
    queue_visible_length: int = NOT_AVAILABLE

    @property
    def has_visible_length(self) -> bool:
        return self.queue_visible_length != NOT_AVAILABLE

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "QueueMetrics":
        visible_length = row.get("queue_visible_length")
        return cls(
            queue_name=row["queue_name"],
            queue_length=row["queue_length"],
            newest_msg_age_sec=row["newest_msg_age_sec"],
            oldest_msg_age_sec=row["oldest_msg_age_sec"],
            total_messages=row["total_messages"],
            scrape_time=row["scrape_time"],
            queue_visible_length=(
                NOT_AVAILABLE if visible_length is None else visible_length
            ),
        )


class ExtensionVersion(NamedTuple):
    """Installed pgmq extension version, e.g. ``ExtensionVersion(1, 5, 0)``."""

    major: int
    minor: int = 0
    patch: int = 0

    @classmethod
    def parse(cls, value: Any) -> "ExtensionVersion":
        if not isinstance(value, str):
            raise PGMQInvariantError(
                f"Expected extension version as text, got {type(value).__name__}"
            )
        match = _VERSION_RE.match(value)
        if match is None:
            raise PGMQInvariantError(f"Unrecognised extension version {value!r}")
        return cls(*(int(part) if part else 0 for part in match.groups()))

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"
