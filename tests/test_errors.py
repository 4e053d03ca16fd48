import unittest

from typed_pgmq.errors import (
    PGMQCodecError,
    PGMQConfigurationError,
    PGMQError,
    PGMQInvariantError,
    PGMQOperationError,
    PGMQUsageError,
)


class TestErrorHierarchy(unittest.TestCase):
    def test_all_errors_share_a_base(self):
        for cls in (
            PGMQConfigurationError,
            PGMQUsageError,
            PGMQOperationError,
            PGMQInvariantError,
            PGMQCodecError,
        ):
            self.assertTrue(issubclass(cls, PGMQError), cls)

    def test_usage_error_is_value_error(self):
        self.assertTrue(issubclass(PGMQUsageError, ValueError))

    def test_cause_defaults_to_none(self):
        self.assertIsNone(PGMQInvariantError("bad").cause)


class TestOperationError(unittest.TestCase):
    def test_message_names_operation_queue_and_message(self):
        cause = ConnectionResetError("peer went away")
        err = PGMQOperationError("delete message", cause, queue="orders", msg_id=42)
        self.assertEqual(
            str(err),
            "Failed to delete message on queue 'orders' for message 42: peer went away",
        )
        self.assertIs(err.cause, cause)
        self.assertEqual(err.operation, "delete message")
        self.assertEqual(err.queue, "orders")
        self.assertEqual(err.msg_id, 42)

    def test_message_without_queue(self):
        err = PGMQOperationError("list queues", RuntimeError("boom"))
        self.assertEqual(str(err), "Failed to list queues: boom")


if __name__ == "__main__":
    unittest.main()
