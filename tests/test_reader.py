import threading
import time
import unittest
from unittest.mock import MagicMock

from topicreader import config
from topicreader.errors import (
    ClosedReaderError,
    ConnectError,
    InvalidConfigurationError,
    ReaderTimeoutError,
    Result,
)
from topicreader.fixtures import MemoryPublisher, hello_payloads
from topicreader.message import MessageId
from topicreader.reader import create_reader
from topicreader.sources.base import MessageSource
from topicreader.sources.memory import MemoryBroker


class ReaderConstructionTestCase(unittest.TestCase):
    def test_missing_topic_never_connects(self):
        source = MagicMock(spec=MessageSource)
        with self.assertRaises(InvalidConfigurationError) as ctx:
            create_reader(source, config.Reader(
                start_message_id=MessageId.LATEST,
            ))

        self.assertEqual(Result.INVALID_CONFIGURATION, ctx.exception.result)
        self.assertEqual('topic', ctx.exception.field)
        source.connect.assert_not_called()

    def test_missing_start_message_id_never_connects(self):
        source = MagicMock(spec=MessageSource)
        with self.assertRaises(InvalidConfigurationError) as ctx:
            create_reader(source, config.Reader(
                topic='my-topic',
            ))

        self.assertEqual(Result.INVALID_CONFIGURATION, ctx.exception.result)
        self.assertEqual('start_message_id', ctx.exception.field)
        source.connect.assert_not_called()

    def test_invalid_configuration_against_broker(self):
        broker = MemoryBroker()
        for conf in [config.Reader(topic='my-topic'), config.Reader(start_message_id=MessageId.LATEST)]:
            with self.subTest(conf=conf):
                with self.assertRaises(InvalidConfigurationError):
                    create_reader(broker, conf)
        self.assertEqual(0, broker.connect_count)

    def test_unreachable_broker_is_connect_error(self):
        broker = MemoryBroker(reachable=False)
        with self.assertRaises(ConnectError) as ctx:
            create_reader(broker, config.Reader(
                topic='my-topic',
                start_message_id=MessageId.EARLIEST,
            ))
        self.assertEqual(Result.CONNECT_ERROR, ctx.exception.result)

    def test_missing_topic_is_connect_error(self):
        broker = MemoryBroker(auto_create_topics=False)
        with self.assertRaises(ConnectError):
            create_reader(broker, config.Reader(
                topic='does-not-exist',
                start_message_id=MessageId.EARLIEST,
            ))

    def test_topic_is_normalized(self):
        broker = MemoryBroker()
        reader = create_reader(broker, config.Reader(
            topic='my-topic',
            start_message_id=MessageId.EARLIEST,
        ))
        self.assertEqual('persistent://public/default/my-topic', reader.topic())
        reader.close()

    def test_release_on_failed_seek(self):
        source = MagicMock(spec=MessageSource)
        source.seek_to_latest.side_effect = ConnectError('watermarks unavailable')

        with self.assertRaises(ConnectError):
            create_reader(source, config.Reader(
                topic='my-topic',
                start_message_id=MessageId.LATEST,
            ))
        source.release.assert_called_once_with(source.connect.return_value)


class ReaderTestCase(unittest.TestCase):
    def setUp(self):
        self.broker = MemoryBroker()
        self.topic = self.broker.create_topic('my-reader-topic')

    def new_reader(self, start_message_id, **kwargs):
        return create_reader(self.broker, config.Reader(
            topic='my-reader-topic',
            start_message_id=start_message_id,
            **kwargs,
        ))

    def test_latest_reads_only_new_messages(self):
        self.broker.publish(self.topic, b'backlog')
        reader = self.new_reader(MessageId.LATEST)
        self.addCleanup(reader.close)

        self.assertEqual('persistent://public/default/my-reader-topic', reader.topic())

        for i in range(10):
            self.broker.publish(self.topic, 'hello-{}'.format(i).encode())

            self.assertTrue(reader.has_next())
            msg = reader.next()
            self.assertEqual('hello-{}'.format(i).encode(), msg.payload())

        self.assertFalse(reader.has_next())

    def test_latest_is_pinned_at_construction(self):
        reader = self.new_reader(MessageId.LATEST)
        self.addCleanup(reader.close)

        # published after construction but before the first read
        MemoryPublisher(self.broker, self.topic).publish(hello_payloads(3))

        payloads = [reader.next(timeout=1).payload() for _ in range(3)]
        self.assertEqual(hello_payloads(3), payloads)

    def test_earliest_reads_backlog_in_order(self):
        MemoryPublisher(self.broker, self.topic).publish(hello_payloads(10))
        reader = self.new_reader(MessageId.EARLIEST)
        self.addCleanup(reader.close)

        self.assertEqual(hello_payloads(10), [m.payload() for m in reader])

    def test_start_after_explicit_id(self):
        ids = MemoryPublisher(self.broker, self.topic).publish(hello_payloads(5))
        reader = self.new_reader(ids[2])
        self.addCleanup(reader.close)

        self.assertEqual(ids[2], reader.last_message_id())
        msg = reader.next(timeout=1)
        self.assertEqual(b'hello-3', msg.payload())
        self.assertEqual(ids[3], msg.id())
        self.assertEqual(ids[3], reader.last_message_id())

    def test_resume_from_serialized_id(self):
        MemoryPublisher(self.broker, self.topic).publish(hello_payloads(4))
        first = self.new_reader(MessageId.EARLIEST)
        first.next(timeout=1)
        first.next(timeout=1)
        saved = first.last_message_id().serialize()
        first.close()

        resumed = self.new_reader(MessageId.deserialize(saved))
        self.addCleanup(resumed.close)
        self.assertEqual([b'hello-2', b'hello-3'], [m.payload() for m in resumed])

    def test_has_next_does_not_advance_cursor(self):
        self.broker.publish(self.topic, b'hello-0')
        reader = self.new_reader(MessageId.EARLIEST)
        self.addCleanup(reader.close)

        self.assertTrue(reader.has_next())
        self.assertTrue(reader.has_next())
        self.assertIsNone(reader.last_message_id())

        msg = reader.next(timeout=1)
        self.assertEqual(b'hello-0', msg.payload())
        self.assertEqual(msg.id(), reader.last_message_id())
        self.assertFalse(reader.has_next())

    def test_next_timeout_leaves_reader_usable(self):
        MemoryPublisher(self.broker, self.topic).publish(hello_payloads(2))
        reader = self.new_reader(MessageId.EARLIEST)
        self.addCleanup(reader.close)
        list(reader)
        last = reader.last_message_id()

        start = time.monotonic()
        with self.assertRaises(ReaderTimeoutError) as ctx:
            reader.next(timeout=0.1)
        elapsed = time.monotonic() - start

        self.assertEqual(Result.TIMEOUT, ctx.exception.result)
        self.assertGreaterEqual(elapsed, 0.1)
        self.assertLess(elapsed, 0.6)
        self.assertEqual(last, reader.last_message_id())

        self.broker.publish(self.topic, b'hello-2')
        self.assertEqual(b'hello-2', reader.next(timeout=1).payload())

    def test_next_wakes_on_publish(self):
        reader = self.new_reader(MessageId.LATEST)
        self.addCleanup(reader.close)

        t = threading.Timer(0.05, self.broker.publish, args=(self.topic, b'late'))
        t.start()
        msg = reader.next(timeout=5)
        t.join()
        self.assertEqual(b'late', msg.payload())

    def test_ids_strictly_increasing(self):
        self.broker.publish(self.topic, b'a', key='k1')
        self.broker.publish(self.topic, b'b')
        self.broker.publish(self.topic, b'c', key='k1')
        self.broker.publish(self.topic, b'd', key='k2')
        reader = self.new_reader(MessageId.EARLIEST)
        self.addCleanup(reader.close)

        ids = [m.id() for m in reader]
        self.assertEqual(4, len(ids))
        for prev, cur in zip(ids, ids[1:]):
            self.assertLess(prev, cur)
        for message_id in ids:
            self.assertFalse(message_id.is_symbolic)

    def test_close_is_idempotent(self):
        reader = self.new_reader(MessageId.EARLIEST)
        reader.close()
        reader.close()
        self.assertTrue(reader.is_closed())

    def test_calls_after_close_raise(self):
        self.broker.publish(self.topic, b'hello-0')
        reader = self.new_reader(MessageId.EARLIEST)
        reader.close()

        with self.assertRaises(ClosedReaderError) as ctx:
            reader.has_next()
        self.assertEqual(Result.CLOSED_READER, ctx.exception.result)

        with self.assertRaises(ClosedReaderError):
            reader.next(timeout=1)

    def test_close_drops_pending_message(self):
        self.broker.publish(self.topic, b'hello-0')
        reader = self.new_reader(MessageId.EARLIEST)
        self.assertTrue(reader.has_next())
        reader.close()

        with self.assertRaises(ClosedReaderError):
            reader.next()

    def test_close_unblocks_next(self):
        reader = self.new_reader(MessageId.LATEST)
        errors = []

        def target():
            try:
                reader.next()
            except Exception as e:
                errors.append(e)

        t = threading.Thread(target=target)
        t.start()
        time.sleep(0.1)

        start = time.monotonic()
        reader.close()
        t.join(timeout=2)

        self.assertFalse(t.is_alive())
        self.assertLess(time.monotonic() - start, 1)
        self.assertEqual(1, len(errors))
        self.assertIsInstance(errors[0], ClosedReaderError)

    def test_context_manager_closes(self):
        with self.new_reader(MessageId.EARLIEST) as reader:
            self.assertFalse(reader.is_closed())
        self.assertTrue(reader.is_closed())

    def test_has_next_waits_briefly(self):
        reader = self.new_reader(MessageId.LATEST, has_next_timeout=2.0)
        self.addCleanup(reader.close)

        t = threading.Timer(0.05, self.broker.publish, args=(self.topic, b'late'))
        t.start()
        self.assertTrue(reader.has_next())
        t.join()
        self.assertEqual(b'late', reader.next(timeout=0).payload())
