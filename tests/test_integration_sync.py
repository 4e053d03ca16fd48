import unittest

import psycopg

from typed_pgmq.decorators import transaction
from typed_pgmq.queue import PGMQueue
from .utils import NOW, Order, db_config, queue_name, requires_database


@requires_database
class TestSyncQueueLive(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.config = db_config()
        cls.queue = PGMQueue.from_config(cls.config)
        cls.queue.init_extension()
        cls.test_queue = queue_name("sync")
        cls.queue.create_queue(cls.test_queue)

    @classmethod
    def tearDownClass(cls):
        cls.queue.drop_queue(cls.test_queue)

    def setUp(self):
        # Purge before each test to ensure clean state
        self.queue.purge_queue(self.test_queue)

    def test_send_read_delete(self):
        order = Order(order_id=1, customer="ada", placed_at=NOW)
        msg_id = self.queue.send(self.test_queue, order)
        msg = self.queue.read(self.test_queue, message_type=Order)
        self.assertEqual(msg.msg_id, msg_id)
        self.assertEqual(msg.read_ct, 1)
        self.assertEqual(msg.message, order)
        self.assertIsNone(self.queue.read(self.test_queue))
        self.assertTrue(self.queue.delete(self.test_queue, msg_id))
        self.assertFalse(self.queue.delete(self.test_queue, msg_id))

    def test_pop(self):
        self.queue.send(self.test_queue, {"n": 1})
        self.assertEqual(self.queue.pop(self.test_queue).read_ct, 0)
        self.assertIsNone(self.queue.pop(self.test_queue))

    def test_batch_and_metrics(self):
        msg_ids = self.queue.send_batch(self.test_queue, [{"n": i} for i in range(5)])
        self.assertEqual(len(msg_ids), 5)
        self.assertCountEqual(self.queue.archive_batch(self.test_queue, msg_ids[:2]), msg_ids[:2])
        metrics = self.queue.metrics(self.test_queue)
        self.assertEqual(metrics.queue_length, 3)
        self.assertEqual(metrics.total_messages, 5)

    def test_poll_times_out_empty(self):
        self.assertEqual(
            self.queue.poll_batch(self.test_queue, poll_timeout_seconds=1, poll_interval_ms=100),
            [],
        )

    def test_set_vt(self):
        msg_id = self.queue.send(self.test_queue, {"n": 1})
        self.queue.read(self.test_queue, vt=30)
        self.queue.set_vt(self.test_queue, msg_id, -3600)
        self.assertEqual(self.queue.read(self.test_queue).msg_id, msg_id)

    def test_borrowed_connection_joins_caller_transaction(self):
        with psycopg.connect(self.config.dsn) as conn:
            borrowed = PGMQueue(connection=conn)
            borrowed.send(self.test_queue, {"n": 1})
            conn.rollback()
            self.assertFalse(conn.closed)
        self.assertIsNone(self.queue.read(self.test_queue))

    def test_transaction_decorator_commits(self):
        @transaction
        def send_two(queue):
            return [queue.send(self.test_queue, {"n": 1}), queue.send(self.test_queue, {"n": 2})]

        msg_ids = send_two(self.queue)
        self.assertEqual(len(self.queue.read_batch(self.test_queue, limit=5)), 2)
        self.assertEqual(len(msg_ids), 2)


if __name__ == "__main__":
    unittest.main()
