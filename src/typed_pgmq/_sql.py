# src/typed_pgmq/_sql.py
"""
Centralized SQL templates for PGMQ operations.

Templates use psycopg's ``%s`` placeholders. The async client runs them
through :func:`numbered` to get asyncpg's ``$1, $2, ...`` form, so both
clients issue the same statements.

Message rows are selected with an explicit column list and the payload cast
to text, so the codec always receives the JSON text as stored, whatever the
driver's own jsonb handling is.
"""

import functools

_MESSAGE_COLUMNS = "msg_id, read_ct, enqueued_at, vt, message::text AS message"

# ============================================================================
# Extension
# ============================================================================

INIT_EXTENSION = "CREATE EXTENSION IF NOT EXISTS pgmq CASCADE;"
EXTENSION_VERSION = "SELECT extversion FROM pg_extension WHERE extname = 'pgmq';"

# ============================================================================
# Queue Management
# ============================================================================

CREATE_QUEUE = "SELECT pgmq.create(%s);"
CREATE_UNLOGGED_QUEUE = "SELECT pgmq.create_unlogged(%s);"
CREATE_PARTITIONED_QUEUE = "SELECT pgmq.create_partitioned(%s, %s::text, %s::text);"
DROP_QUEUE = "SELECT pgmq.drop_queue(%s);"
DROP_PARTITIONED_QUEUE = "SELECT pgmq.drop_queue(%s, %s);"
LIST_QUEUES = "SELECT queue_name, created_at, is_partitioned, is_unlogged FROM pgmq.list_queues();"
QUEUE_EXISTS = "SELECT EXISTS (SELECT 1 FROM pgmq.list_queues() WHERE queue_name = %s);"

# ============================================================================
# Sending Messages
# ============================================================================

SEND = "SELECT * FROM pgmq.send(queue_name=>%s::text, msg=>%s::jsonb);"
SEND_WITH_DELAY_INT = (
    "SELECT * FROM pgmq.send(queue_name=>%s::text, msg=>%s::jsonb, delay=>%s::integer);"
)
SEND_WITH_DELAY_TZ = "SELECT * FROM pgmq.send(queue_name=>%s::text, msg=>%s::jsonb, delay=>%s::timestamptz);"

SEND_BATCH = "SELECT msg_id FROM pgmq.send_batch(queue_name=>%s::text, msgs=>%s::jsonb[]) AS msg_id;"
SEND_BATCH_WITH_DELAY_INT = "SELECT msg_id FROM pgmq.send_batch(queue_name=>%s::text, msgs=>%s::jsonb[], delay=>%s::integer) AS msg_id;"
SEND_BATCH_WITH_DELAY_TZ = "SELECT msg_id FROM pgmq.send_batch(queue_name=>%s::text, msgs=>%s::jsonb[], delay=>%s::timestamptz) AS msg_id;"

# ============================================================================
# Reading Messages
# ============================================================================

READ = f"""SELECT {_MESSAGE_COLUMNS}
          FROM pgmq.read(queue_name=>%s::text, vt=>%s::integer, qty=>%s::integer);"""

READ_WITH_POLL = f"""SELECT {_MESSAGE_COLUMNS}
                    FROM pgmq.read_with_poll(queue_name=>%s::text, vt=>%s::integer, qty=>%s::integer,
                    max_poll_seconds=>%s::integer, poll_interval_ms=>%s::integer);"""

POP = f"""SELECT {_MESSAGE_COLUMNS}
         FROM pgmq.pop(queue_name=>%s::text);"""

# ============================================================================
# Deleting/Archiving
# ============================================================================

DELETE = "SELECT pgmq.delete(queue_name=>%s::text, msg_id=>%s::bigint);"
DELETE_BATCH = "SELECT msg_id FROM pgmq.delete(queue_name=>%s::text, msg_ids=>%s::bigint[]) AS msg_id;"
ARCHIVE = "SELECT pgmq.archive(queue_name=>%s::text, msg_id=>%s::bigint);"
ARCHIVE_BATCH = (
    "SELECT msg_id FROM pgmq.archive(queue_name=>%s::text, msg_ids=>%s::bigint[]) AS msg_id;"
)
PURGE_QUEUE = "SELECT pgmq.purge_queue(queue_name=>%s::text);"

# ============================================================================
# Visibility Timeout
# ============================================================================

SET_VT = "SELECT msg_id FROM pgmq.set_vt(queue_name=>%s::text, msg_id=>%s::bigint, vt=>%s::integer);"

# ============================================================================
# Metrics
# ============================================================================

METRICS = "SELECT * FROM pgmq.metrics(queue_name=>%s::text);"
METRICS_ALL = "SELECT * FROM pgmq.metrics_all();"


@functools.lru_cache(maxsize=None)
def numbered(query: str) -> str:
    """Rewrite ``%s`` placeholders as ``$1, $2, ...`` for asyncpg."""
    parts = query.split("%s")
    out = [parts[0]]
    for position, part in enumerate(parts[1:], start=1):
        out.append(f"${position}{part}")
    return "".join(out)


def get_send_sql(delay: bool = False, delay_is_timestamp: bool = False) -> str:
    """Get appropriate send SQL based on parameters."""
    if delay:
        return SEND_WITH_DELAY_TZ if delay_is_timestamp else SEND_WITH_DELAY_INT
    return SEND


def get_send_batch_sql(delay: bool = False, delay_is_timestamp: bool = False) -> str:
    """Get appropriate send_batch SQL based on parameters."""
    if delay:
        return (
            SEND_BATCH_WITH_DELAY_TZ
            if delay_is_timestamp
            else SEND_BATCH_WITH_DELAY_INT
        )
    return SEND_BATCH
