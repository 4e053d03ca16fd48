# src/typed_pgmq/__init__.py

from typed_pgmq.async_queue import PGMQueue as AsyncPGMQueue
from typed_pgmq.base import PGMQConfig
from typed_pgmq.codec import MessageCodec
from typed_pgmq.decorators import async_transaction, transaction
from typed_pgmq.errors import (
    PGMQCodecError,
    PGMQConfigurationError,
    PGMQError,
    PGMQInvariantError,
    PGMQOperationError,
    PGMQUsageError,
)
from typed_pgmq.logger import PGMQLogger, create_logger, log_performance
from typed_pgmq.messages import ExtensionVersion, Message, QueueMetrics, QueueRecord
from typed_pgmq.queue import PGMQueue

__all__ = [
    "AsyncPGMQueue",
    "ExtensionVersion",
    "Message",
    "MessageCodec",
    "PGMQConfig",
    "PGMQCodecError",
    "PGMQConfigurationError",
    "PGMQError",
    "PGMQInvariantError",
    "PGMQLogger",
    "PGMQOperationError",
    "PGMQUsageError",
    "PGMQueue",
    "QueueMetrics",
    "QueueRecord",
    "async_transaction",
    "create_logger",
    "log_performance",
    "transaction",
]
