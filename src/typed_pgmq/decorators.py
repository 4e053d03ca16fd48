# src/typed_pgmq/decorators.py
"""
Transaction decorators for sync and async operations.

The decorated function takes a PGMQ client as its first argument. When that
client opens its own connections, the function runs against a client bound
to one connection inside a transaction (see ``PGMQueue.transaction``). When
the client already borrows a caller's connection, the caller owns the
transaction and the function is called unchanged.

Usage:
    @async_transaction
    async def move(queue, source, target, msg_id):
        msg = await queue.pop(source)
        await queue.send(target, msg.message)
"""

import functools
from typing import Any, Callable


def transaction(func: Callable) -> Callable:
    """Synchronous transaction decorator for functions taking a sync client."""

    @functools.wraps(func)
    def wrapper(queue, *args: Any, **kwargs: Any) -> Any:
        if not queue.owns_connection:
            return func(queue, *args, **kwargs)

        with queue.transaction() as tx_queue:
            return func(tx_queue, *args, **kwargs)

    return wrapper


def async_transaction(func: Callable) -> Callable:
    """Asynchronous transaction decorator for coroutines taking an async client."""

    @functools.wraps(func)
    async def wrapper(queue, *args: Any, **kwargs: Any) -> Any:
        if not queue.owns_connection:
            return await func(queue, *args, **kwargs)

        async with queue.transaction() as tx_queue:
            return await func(tx_queue, *args, **kwargs)

    return wrapper
