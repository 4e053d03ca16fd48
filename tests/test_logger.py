import logging
import unittest
import uuid

from loguru import logger as loguru_logger

from typed_pgmq.logger import PGMQLogger, create_logger, log_performance, log_with_context


def logger_name():
    return f"typed_pgmq.tests.{uuid.uuid4().hex[:8]}"


class TestStandardLogger(unittest.TestCase):
    def tearDown(self):
        PGMQLogger.reset()

    def test_loggers_are_cached(self):
        name = logger_name()
        self.assertIs(create_logger(name), create_logger(name))

    def test_levels(self):
        self.assertEqual(PGMQLogger.get_logger(logger_name()).level, logging.WARNING)
        self.assertEqual(
            PGMQLogger.get_logger(logger_name(), log_level=logging.INFO).level, logging.INFO
        )

    def test_context_is_appended(self):
        logger = PGMQLogger.get_logger(logger_name())
        with self.assertLogs(logger, level="DEBUG") as logs:
            log_with_context(logger, logging.INFO, "Message sent", queue="orders", msg_id=3)
        self.assertEqual(
            logs.records[0].getMessage(), "Message sent | queue=orders | msg_id=3"
        )

    def test_string_levels(self):
        logger = PGMQLogger.get_logger(logger_name())
        with self.assertLogs(logger, level="WARNING") as logs:
            log_with_context(logger, "WARNING", "slow poll")
        self.assertEqual(logs.records[0].levelno, logging.WARNING)

    def test_transaction_events(self):
        logger = PGMQLogger.get_logger(logger_name())
        with self.assertLogs(logger, level="DEBUG") as logs:
            PGMQLogger.log_transaction_start(logger, "move")
            PGMQLogger.log_transaction_error(logger, "move", ValueError("bad"))
        self.assertIn("event=transaction_start", logs.output[0])
        self.assertIn("error_type=ValueError", logs.output[1])


class TestLoguruLogger(unittest.TestCase):
    def setUp(self):
        self.records = []
        self.sink_id = loguru_logger.add(
            lambda message: self.records.append(message.record), level="DEBUG"
        )

    def tearDown(self):
        loguru_logger.remove(self.sink_id)
        PGMQLogger.reset()

    def test_context_is_bound(self):
        name = logger_name()
        logger = PGMQLogger.get_logger(name, use_loguru=True)
        log_with_context(logger, logging.INFO, "Message sent", queue="orders")

        record = self.records[-1]
        self.assertEqual(record["message"], "Message sent")
        self.assertEqual(record["level"].name, "INFO")
        self.assertEqual(record["extra"]["queue"], "orders")
        self.assertEqual(record["extra"]["logger"], name)

    def test_cached_separately_from_standard(self):
        name = logger_name()
        self.assertIsNot(
            PGMQLogger.get_logger(name), PGMQLogger.get_logger(name, use_loguru=True)
        )


class TestLogPerformance(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.logger = PGMQLogger.get_logger(logger_name())

    def tearDown(self):
        PGMQLogger.reset()

    def test_sync_success(self):
        @log_performance(self.logger)
        def add(a, b):
            return a + b

        with self.assertLogs(self.logger, level="DEBUG") as logs:
            self.assertEqual(add(1, 2), 3)
        self.assertIn("Completed add", logs.output[0])
        self.assertIn("success=True", logs.output[0])

    def test_sync_failure(self):
        @log_performance(self.logger)
        def explode():
            raise RuntimeError("boom")

        with self.assertLogs(self.logger, level="DEBUG") as logs:
            with self.assertRaises(RuntimeError):
                explode()
        self.assertEqual(logs.records[0].levelno, logging.ERROR)

    async def test_async(self):
        @log_performance(self.logger)
        async def fetch():
            return "ok"

        with self.assertLogs(self.logger, level="DEBUG") as logs:
            self.assertEqual(await fetch(), "ok")
        self.assertIn("elapsed_ms=", logs.output[0])
        self.assertEqual(fetch.__name__, "fetch")


if __name__ == "__main__":
    unittest.main()
