# src/typed_pgmq/queue.py

import logging
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, List, Optional, Type, TypeVar

from typed_pgmq import _sql
from typed_pgmq.base import BaseQueue
from typed_pgmq.connection import CommandFactory
from typed_pgmq.errors import PGMQInvariantError
from typed_pgmq.logger import PGMQLogger, log_with_context
from typed_pgmq.messages import ExtensionVersion, Message, QueueMetrics, QueueRecord

T = TypeVar("T")


class PGMQueue(BaseQueue):
    """
    Blocking PGMQ client on psycopg 3.

    Built from a connection string, each call opens an autocommit connection
    and closes it when done. Built from an open ``psycopg.Connection``, each
    call runs on that connection and leaves it open; with autocommit off the
    statements join the caller's transaction and nothing is committed until
    the caller commits.
    """

    def __init__(self, dsn: Optional[str] = None, **kwargs):
        super().__init__(dsn, **kwargs)
        self._commands = CommandFactory(self.source)

    def _fetch(self, query: str, *args):
        with self._commands.create(query) as command:
            return command.fetch(*args)

    def _fetchval(self, query: str, *args):
        with self._commands.create(query) as command:
            return command.fetchval(*args)

    def _execute(self, query: str, *args) -> None:
        with self._commands.create(query) as command:
            command.execute(*args)

    @contextmanager
    def transaction(self) -> Iterator["PGMQueue"]:
        """
        Run several operations in one transaction.

        Yields a client bound to a single connection inside a transaction
        that commits on normal exit and rolls back on error. An owned
        connection is closed afterwards.
        """
        connection = self._commands.open_connection()
        PGMQLogger.log_transaction_start(
            self.logger, "transaction", owns_connection=self.owns_connection
        )
        try:
            with connection.transaction():
                yield type(self)(connection=connection, config=self.config, codec=self.codec)
        except Exception as e:
            PGMQLogger.log_transaction_error(self.logger, "transaction", e)
            raise
        else:
            PGMQLogger.log_transaction_success(self.logger, "transaction")
        finally:
            if self.owns_connection and not connection.closed:
                connection.close()

    def init_extension(self) -> None:
        """Create the pgmq extension if it is not installed yet."""
        log_with_context(self.logger, logging.DEBUG, "Initializing pgmq extension")
        with self._operation("initialize the pgmq extension"):
            self._execute(_sql.INIT_EXTENSION)

    def get_extension_version(self) -> Optional[ExtensionVersion]:
        """Return the installed pgmq version, or None if the extension is absent."""
        log_with_context(self.logger, logging.DEBUG, "Reading extension version")
        with self._operation("read the pgmq extension version"):
            value = self._fetchval(_sql.EXTENSION_VERSION)
        version = None if value is None else ExtensionVersion.parse(value)
        log_with_context(
            self.logger, logging.DEBUG, "Extension version read", version=version
        )
        return version

    def create_queue(self, queue: str) -> None:
        """Create a new queue."""
        self._require_queue(queue)
        log_with_context(self.logger, logging.DEBUG, "Creating queue", queue=queue)
        with self._operation("create queue", queue=queue):
            self._execute(_sql.CREATE_QUEUE, queue)

    def create_unlogged_queue(self, queue: str) -> None:
        """Create a new queue backed by unlogged tables."""
        self._require_queue(queue)
        log_with_context(
            self.logger, logging.DEBUG, "Creating unlogged queue", queue=queue
        )
        with self._operation("create unlogged queue", queue=queue):
            self._execute(_sql.CREATE_UNLOGGED_QUEUE, queue)

    def create_partitioned_queue(
        self,
        queue: str,
        partition_interval: str = "10000",
        retention_interval: str = "100000",
    ) -> None:
        """Create a new partitioned queue (requires pg_partman on the server)."""
        self._require_queue(queue)
        log_with_context(
            self.logger,
            logging.DEBUG,
            "Creating partitioned queue",
            queue=queue,
            partition_interval=partition_interval,
            retention_interval=retention_interval,
        )
        with self._operation("create partitioned queue", queue=queue):
            self._execute(
                _sql.CREATE_PARTITIONED_QUEUE,
                queue,
                str(partition_interval),
                str(retention_interval),
            )

    def drop_queue(self, queue: str, partitioned: bool = False) -> None:
        """Drop a queue and its archive."""
        self._require_queue(queue)
        log_with_context(
            self.logger,
            logging.DEBUG,
            "Dropping queue",
            queue=queue,
            partitioned=partitioned,
        )
        with self._operation("drop queue", queue=queue):
            if partitioned:
                self._execute(_sql.DROP_PARTITIONED_QUEUE, queue, True)
            else:
                self._execute(_sql.DROP_QUEUE, queue)

    def queue_exists(self, queue: str) -> bool:
        """Check whether a queue is registered."""
        self._require_queue(queue)
        log_with_context(
            self.logger, logging.DEBUG, "Checking queue existence", queue=queue
        )
        with self._operation("check queue existence", queue=queue):
            exists = bool(self._fetchval(_sql.QUEUE_EXISTS, queue))
        log_with_context(
            self.logger, logging.DEBUG, "Queue existence checked", queue=queue, exists=exists
        )
        return exists

    def list_queues(self) -> List[QueueRecord]:
        """List all queues."""
        log_with_context(self.logger, logging.DEBUG, "Listing queues")
        with self._operation("list queues"):
            rows = self._fetch(_sql.LIST_QUEUES)
        queues = [QueueRecord.from_row(row) for row in rows]
        log_with_context(
            self.logger, logging.DEBUG, "Queues listed", count=len(queues)
        )
        return queues

    def send(
        self,
        queue: str,
        message: Any,
        delay=None,
        *,
        message_type: Optional[Type[Any]] = None,
    ) -> int:
        """
        Send a message to a queue and return its id.

        ``delay`` is None, seconds (int or timedelta), or the datetime at
        which the message becomes visible.
        """
        self._require_queue(queue)
        query, delay_params = self._send_sql(delay)
        payload = self.codec.encode(message, message_type)
        log_with_context(
            self.logger, logging.DEBUG, "Sending message", queue=queue, delay=delay
        )
        with self._operation("send message", queue=queue):
            msg_id = self._fetchval(query, queue, payload, *delay_params)
        log_with_context(
            self.logger,
            logging.DEBUG,
            "Message sent successfully",
            queue=queue,
            msg_id=msg_id,
        )
        return msg_id

    def send_batch(
        self,
        queue: str,
        messages: Iterable[Any],
        delay=None,
        *,
        message_type: Optional[Type[Any]] = None,
    ) -> List[int]:
        """Send several messages and return their ids, in no guaranteed order."""
        self._require_queue(queue)
        query, delay_params = self._send_sql(delay, batch=True)
        payloads = self.codec.encode_many(messages, message_type)
        log_with_context(
            self.logger,
            logging.DEBUG,
            "Sending batch messages",
            queue=queue,
            batch_size=len(payloads),
            delay=delay,
        )
        with self._operation("send message batch", queue=queue):
            rows = self._fetch(query, queue, payloads, *delay_params)
        msg_ids = [row["msg_id"] for row in rows]
        log_with_context(
            self.logger,
            logging.DEBUG,
            "Batch messages sent successfully",
            queue=queue,
            msg_ids=msg_ids,
        )
        return msg_ids

    def read(
        self,
        queue: str,
        vt: Optional[int] = None,
        *,
        message_type: Optional[Type[T]] = None,
    ) -> Optional[Message[T]]:
        """Read one message, hiding it for ``vt`` seconds."""
        messages = self.read_batch(queue, vt, limit=1, message_type=message_type)
        return messages[0] if messages else None

    def read_batch(
        self,
        queue: str,
        vt: Optional[int] = None,
        limit: Optional[int] = None,
        *,
        message_type: Optional[Type[T]] = None,
    ) -> List[Message[T]]:
        """Read up to ``limit`` messages in a single attempt."""
        self._require_queue(queue)
        vt, limit = self._vt(vt), self._limit(limit)
        log_with_context(
            self.logger,
            logging.DEBUG,
            "Reading messages",
            queue=queue,
            vt=vt,
            limit=limit,
        )
        with self._operation("read messages", queue=queue):
            rows = self._fetch(_sql.READ, queue, vt, limit)
        messages = [Message.from_row(row, message_type, self.codec) for row in rows]
        log_with_context(
            self.logger,
            logging.DEBUG,
            "Messages read completed",
            queue=queue,
            count=len(messages),
        )
        return messages

    def poll(
        self,
        queue: str,
        vt: Optional[int] = None,
        poll_timeout_seconds: Optional[int] = None,
        poll_interval_ms: Optional[int] = None,
        *,
        message_type: Optional[Type[T]] = None,
    ) -> Optional[Message[T]]:
        """Block up to ``poll_timeout_seconds`` for one message. None on timeout."""
        messages = self.poll_batch(
            queue,
            vt,
            limit=1,
            poll_timeout_seconds=poll_timeout_seconds,
            poll_interval_ms=poll_interval_ms,
            message_type=message_type,
        )
        return messages[0] if messages else None

    def poll_batch(
        self,
        queue: str,
        vt: Optional[int] = None,
        limit: Optional[int] = None,
        poll_timeout_seconds: Optional[int] = None,
        poll_interval_ms: Optional[int] = None,
        *,
        message_type: Optional[Type[T]] = None,
    ) -> List[Message[T]]:
        """Block up to ``poll_timeout_seconds`` for messages; empty list on timeout."""
        self._require_queue(queue)
        vt, limit = self._vt(vt), self._limit(limit)
        poll_timeout_seconds, poll_interval_ms = self._poll_args(
            poll_timeout_seconds, poll_interval_ms
        )
        log_with_context(
            self.logger,
            logging.DEBUG,
            "Polling for messages",
            queue=queue,
            vt=vt,
            limit=limit,
            poll_timeout_seconds=poll_timeout_seconds,
            poll_interval_ms=poll_interval_ms,
        )
        with self._operation("poll for messages", queue=queue):
            rows = self._fetch(
                _sql.READ_WITH_POLL,
                queue,
                vt,
                limit,
                poll_timeout_seconds,
                poll_interval_ms,
            )
        messages = [Message.from_row(row, message_type, self.codec) for row in rows]
        log_with_context(
            self.logger,
            logging.DEBUG,
            "Poll completed",
            queue=queue,
            count=len(messages),
            timed_out=not messages,
        )
        return messages

    def pop(
        self, queue: str, *, message_type: Optional[Type[T]] = None
    ) -> Optional[Message[T]]:
        """Read and delete one message in a single step."""
        self._require_queue(queue)
        log_with_context(self.logger, logging.DEBUG, "Popping message", queue=queue)
        with self._operation("pop message", queue=queue):
            rows = self._fetch(_sql.POP, queue)
        result = Message.from_row(rows[0], message_type, self.codec) if rows else None
        log_with_context(
            self.logger,
            logging.DEBUG,
            "Message popped",
            queue=queue,
            msg_id=result.msg_id if result else None,
        )
        return result

    def delete(self, queue: str, msg_id: int) -> bool:
        """Delete a message. False if no such message exists."""
        self._require_queue(queue)
        log_with_context(
            self.logger, logging.DEBUG, "Deleting message", queue=queue, msg_id=msg_id
        )
        with self._operation("delete message", queue=queue, msg_id=msg_id):
            deleted = bool(self._fetchval(_sql.DELETE, queue, msg_id))
        log_with_context(
            self.logger,
            logging.DEBUG,
            "Message deleted",
            queue=queue,
            msg_id=msg_id,
            success=deleted,
        )
        return deleted

    def delete_batch(self, queue: str, msg_ids: Iterable[int]) -> List[int]:
        """Delete several messages and return the ids that were deleted."""
        self._require_queue(queue)
        msg_ids = self._msg_ids(msg_ids)
        log_with_context(
            self.logger,
            logging.DEBUG,
            "Deleting batch messages",
            queue=queue,
            msg_ids=msg_ids,
        )
        with self._operation("delete message batch", queue=queue, msg_id=msg_ids):
            rows = self._fetch(_sql.DELETE_BATCH, queue, msg_ids)
        deleted_ids = [row["msg_id"] for row in rows]
        log_with_context(
            self.logger,
            logging.DEBUG,
            "Batch messages deleted",
            queue=queue,
            deleted_ids=deleted_ids,
        )
        return deleted_ids

    def archive(self, queue: str, msg_id: int) -> bool:
        """Move a message to the queue's archive. False if no such message exists."""
        self._require_queue(queue)
        log_with_context(
            self.logger, logging.DEBUG, "Archiving message", queue=queue, msg_id=msg_id
        )
        with self._operation("archive message", queue=queue, msg_id=msg_id):
            archived = bool(self._fetchval(_sql.ARCHIVE, queue, msg_id))
        log_with_context(
            self.logger,
            logging.DEBUG,
            "Message archived",
            queue=queue,
            msg_id=msg_id,
            success=archived,
        )
        return archived

    def archive_batch(self, queue: str, msg_ids: Iterable[int]) -> List[int]:
        """Archive several messages and return the ids that were archived."""
        self._require_queue(queue)
        msg_ids = self._msg_ids(msg_ids)
        log_with_context(
            self.logger,
            logging.DEBUG,
            "Archiving batch messages",
            queue=queue,
            msg_ids=msg_ids,
        )
        with self._operation("archive message batch", queue=queue, msg_id=msg_ids):
            rows = self._fetch(_sql.ARCHIVE_BATCH, queue, msg_ids)
        archived_ids = [row["msg_id"] for row in rows]
        log_with_context(
            self.logger,
            logging.DEBUG,
            "Batch messages archived",
            queue=queue,
            archived_ids=archived_ids,
        )
        return archived_ids

    def purge_queue(self, queue: str) -> int:
        """Delete every message in a queue and return how many were removed."""
        self._require_queue(queue)
        log_with_context(self.logger, logging.DEBUG, "Purging queue", queue=queue)
        with self._operation("purge queue", queue=queue):
            count = self._fetchval(_sql.PURGE_QUEUE, queue)
        log_with_context(
            self.logger, logging.DEBUG, "Queue purged", queue=queue, count=count
        )
        return count

    def set_vt(self, queue: str, msg_id: int, vt_offset: int) -> None:
        """Shift a message's visibility time by ``vt_offset`` seconds."""
        self._require_queue(queue)
        log_with_context(
            self.logger,
            logging.DEBUG,
            "Setting visibility timeout",
            queue=queue,
            msg_id=msg_id,
            vt_offset=vt_offset,
        )
        with self._operation("set visibility timeout", queue=queue, msg_id=msg_id):
            self._fetch(_sql.SET_VT, queue, msg_id, vt_offset)
        log_with_context(
            self.logger,
            logging.DEBUG,
            "Visibility timeout set",
            queue=queue,
            msg_id=msg_id,
        )

    def metrics(self, queue: str) -> QueueMetrics:
        """Get metrics for one queue."""
        self._require_queue(queue)
        log_with_context(
            self.logger, logging.DEBUG, "Getting queue metrics", queue=queue
        )
        with self._operation("get metrics", queue=queue):
            rows = self._fetch(_sql.METRICS, queue)
        if len(rows) != 1:
            raise PGMQInvariantError(
                f"Expected exactly one metrics row for queue {queue!r}, got {len(rows)}"
            )
        metrics = QueueMetrics.from_row(rows[0])
        log_with_context(
            self.logger,
            logging.DEBUG,
            "Queue metrics retrieved",
            queue=queue,
            queue_length=metrics.queue_length,
            total_messages=metrics.total_messages,
        )
        return metrics

    def metrics_all(self) -> List[QueueMetrics]:
        """Get metrics for every queue."""
        log_with_context(self.logger, logging.DEBUG, "Getting all queue metrics")
        with self._operation("get metrics for all queues"):
            rows = self._fetch(_sql.METRICS_ALL)
        metrics_list = [QueueMetrics.from_row(row) for row in rows]
        log_with_context(
            self.logger,
            logging.DEBUG,
            "All queue metrics retrieved",
            count=len(metrics_list),
        )
        return metrics_list
