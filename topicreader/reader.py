import logging
import threading
import time
from typing import Optional

from opentelemetry import metrics

from topicreader import config, position, settings
from topicreader.compaction import CompactionView, PassThroughView
from topicreader.errors import ClosedReaderError, ReaderTimeoutError
from topicreader.message import Message, MessageId
from topicreader.sources.base import MessageSource, Handle


logger = logging.getLogger(__name__)
meter = metrics.get_meter('topicreader.reader')

messages_read_counter = meter.create_counter(
    name="reader_messages_read",
    description="Number of messages delivered by readers",
    unit="messages",
)

timeout_counter = meter.create_counter(
    name="reader_timeouts",
    description="Number of next() calls that hit their deadline",
    unit="count",
)

compacted_out_counter = meter.create_counter(
    name="reader_compacted_out",
    description="Number of messages hidden by the compacted view",
    unit="messages",
)

next_latency = meter.create_histogram(
    name="reader_next_latency",
    description="Latency of next() calls that returned a message",
    unit="seconds",
)


class Reader:
    '''
    Reader is a sequential, non-acking cursor over a single topic.

    Messages are delivered in strictly increasing id order. next() is the only
    blocking call; close() may be called from any thread and unblocks a
    pending next() with ClosedReaderError.
    '''

    def __init__(self,
                 source: MessageSource,
                 handle: Handle,
                 cursor: position.Cursor,
                 view: CompactionView = PassThroughView(),
                 has_next_timeout: float = settings.HAS_NEXT_TIMEOUT,
                 name: Optional[str] = None):
        self._source = source
        self._handle = handle
        self._cursor = cursor
        self._view = view
        self._has_next_timeout = has_next_timeout
        self._name = name or handle.topic
        self._closed = threading.Event()
        self._lock = threading.Lock()
        # single message of look-ahead taken by has_next()
        self._pending = None

    def topic(self) -> str:
        return self._handle.topic

    def last_message_id(self) -> Optional[MessageId]:
        return self._cursor.last_delivered

    def is_closed(self) -> bool:
        return self._closed.is_set()

    def _check_open(self):
        if self._closed.is_set():
            raise ClosedReaderError('reader {} is closed'.format(self._name))

    def _admit(self, msg: Optional[Message]) -> bool:
        if msg is None or self._view.admits(msg):
            return True
        compacted_out_counter.add(1, attributes={
            'topic': self.topic(),
        })
        return False

    def _try_take(self) -> Optional[Message]:
        while True:
            msg = self._source.try_take_next(self._handle)
            if self._admit(msg):
                return msg

    def _wait_take(self, deadline: Optional[float]) -> Optional[Message]:
        while True:
            msg = self._source.wait_take_next(self._handle, deadline, self._closed)
            if self._admit(msg):
                return msg

    def _pop_pending(self) -> Optional[Message]:
        with self._lock:
            msg, self._pending = self._pending, None
        return msg

    def has_next(self) -> bool:
        """
        Reports whether a message is available.

        Waits at most has_next_timeout seconds for a message to arrive. A
        message found here is kept and returned by the following next().

        :raises ClosedReaderError:
        """
        self._check_open()

        with self._lock:
            if self._pending is not None:
                return True

        msg = self._try_take()
        if msg is None and self._has_next_timeout > 0:
            msg = self._wait_take(time.monotonic() + self._has_next_timeout)

        self._check_open()
        if msg is None:
            return False

        with self._lock:
            self._pending = msg
        return True

    def next(self, timeout: Optional[float] = None) -> Message:
        """
        Returns the next message, blocking until one is available.

        :param timeout: seconds to wait, None waits until a message arrives
            or the reader is closed.
        :raises ReaderTimeoutError: if no message arrived in time. The cursor
            is unchanged and the call can be retried.
        :raises ClosedReaderError: if the reader is, or gets, closed.
        """
        self._check_open()
        start = time.monotonic()
        deadline = start + timeout if timeout is not None else None

        msg = self._pop_pending()
        if msg is None:
            msg = self._try_take()
        if msg is None:
            msg = self._wait_take(deadline)

        self._check_open()
        if msg is None:
            timeout_counter.add(1, attributes={
                'topic': self.topic(),
            })
            raise ReaderTimeoutError('no message on {} within {}s'.format(
                self.topic(),
                timeout,
            ))

        self._cursor.advance(msg.id())
        messages_read_counter.add(1, attributes={
            'topic': self.topic(),
        })
        next_latency.record(time.monotonic() - start, attributes={
            'topic': self.topic(),
        })
        return msg

    def close(self):
        """
        Closes the reader and releases its source handle. Calling close more
        than once is a no-op.
        """
        with self._lock:
            if self._closed.is_set():
                return
            self._closed.set()
            self._pending = None

        self._source.release(self._handle)
        logger.info('reader {} closed at {}'.format(
            self._name,
            self._cursor.last_delivered,
        ))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __iter__(self):
        return self

    def __next__(self) -> Message:
        if not self.has_next():
            raise StopIteration
        return self.next()


def create_reader(source: MessageSource, conf: config.Reader) -> Reader:
    """
    Validates the configuration, connects to the topic and positions a new
    reader at the configured start.

    :raises InvalidConfigurationError: before any connection is attempted.
    :raises ConnectError: if the source cannot reach the topic.
    """
    topic = config.validate(conf)
    handle = source.connect(topic)

    try:
        cursor = position.resolve(source, handle, conf)
    except Exception:
        source.release(handle)
        raise

    if conf.read_compacted:
        view = CompactionView(cursor.horizon)
    else:
        view = PassThroughView()

    logger.info('reader created on {} starting at {} (read_compacted={})'.format(
        topic,
        conf.start_message_id,
        conf.read_compacted,
    ))
    return Reader(
        source=source,
        handle=handle,
        cursor=cursor,
        view=view,
        has_next_timeout=conf.has_next_timeout,
        name=conf.reader_name,
    )
