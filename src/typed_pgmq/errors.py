"""
Exception hierarchy for typed_pgmq.

PGMQError
├── PGMQConfigurationError  no usable connection source at call time
├── PGMQUsageError          invalid or conflicting call arguments (also a ValueError)
├── PGMQOperationError      database/driver failure wrapped at the operation boundary
├── PGMQInvariantError      the server broke a result-shape contract
└── PGMQCodecError          payload could not be encoded or decoded
"""

from typing import Optional


class PGMQError(Exception):
    """
    Base class for all typed_pgmq exceptions.

    Attributes
    ----------
    cause : Exception or None
        The original exception, when this error wraps one.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        self.cause = cause
        super().__init__(message)


class PGMQConfigurationError(PGMQError):
    """Raised when a command cannot be provisioned from the client's connection source."""


class PGMQUsageError(PGMQError, ValueError):
    """Raised before any I/O when the caller passes arguments that cannot be honoured."""


class PGMQOperationError(PGMQError):
    """
    Wraps a failure surfaced by the database or driver.

    The message names the operation, and the queue and message ids involved
    where there are any. The original error is kept on ``cause`` and chained
    as ``__cause__``.
    """

    def __init__(
        self,
        operation: str,
        cause: BaseException,
        queue: Optional[str] = None,
        msg_id=None,
    ) -> None:
        self.operation = operation
        self.queue = queue
        self.msg_id = msg_id
        parts = [f"Failed to {operation}"]
        if queue is not None:
            parts.append(f"on queue {queue!r}")
        if msg_id is not None:
            parts.append(f"for message {msg_id!r}")
        super().__init__(f"{' '.join(parts)}: {cause}", cause)


class PGMQInvariantError(PGMQError):
    """Raised when a result set does not have the shape the extension guarantees."""


class PGMQCodecError(PGMQError):
    """Raised when a message payload cannot be serialized or deserialized."""
