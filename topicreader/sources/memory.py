import bisect
import itertools
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional

from topicreader import topics
from topicreader.errors import ConnectError
from topicreader.message import Message, MessageId

from .base import MessageSource, Handle, Horizon


logger = logging.getLogger(__name__)


class _Log:
    def __init__(self, topic: str, ledger_id: int):
        self.topic = topic
        self.ledger_id = ledger_id
        self.messages: List[Message] = []
        self.ids: List[MessageId] = []
        self.horizon: Optional[Horizon] = None


class MemoryHandle(Handle):
    def __init__(self, topic: str, log: _Log):
        super().__init__(topic)
        self.log = log
        # index of the next message to deliver
        self.position = 0


class MemoryBroker(MessageSource):
    """
    MemoryBroker keeps topics as in-process, append-only logs.

    It plays the role of the broker for local development and tests:
    producers publish into it, compact() collapses a topic to its latest
    message per key, and readers consume through the MessageSource
    interface. Setting reachable to False makes every connect fail, which
    simulates a broker that cannot be resolved.
    """
    def __init__(self, reachable=True, auto_create_topics=True):
        self.reachable = reachable
        self.auto_create_topics = auto_create_topics
        self.connect_count = 0
        self._cond = threading.Condition()
        self._logs: Dict[str, _Log] = {}
        self._ledger_ids = itertools.count()

    def create_topic(self, topic: str) -> str:
        name = topics.normalize(topic)
        with self._cond:
            self._get_or_create(name)
        return name

    def _get_or_create(self, name: str) -> _Log:
        log = self._logs.get(name)
        if log is None:
            log = _Log(name, next(self._ledger_ids))
            self._logs[name] = log
        return log

    def publish(self, topic: str, payload: bytes, key: Optional[str] = None) -> MessageId:
        name = topics.normalize(topic)
        with self._cond:
            log = self._get_or_create(name)
            message_id = MessageId(log.ledger_id, len(log.messages))
            log.messages.append(Message(
                id=message_id,
                payload=payload,
                key=key,
                topic=name,
                publish_time=datetime.now(timezone.utc),
            ))
            log.ids.append(message_id)
            self._cond.notify_all()
        return message_id

    def messages(self, topic: str) -> List[Message]:
        with self._cond:
            return list(self._logs[topics.normalize(topic)].messages)

    def compact(self, topic: str) -> Optional[Horizon]:
        """
        Compacts everything published to the topic so far.

        The latest message for each key is retained, unless that message is
        a tombstone in which case the key is removed. Keyless messages are
        not affected.

        :return: the new horizon, or None if the topic is empty.
        """
        name = topics.normalize(topic)
        with self._cond:
            log = self._logs[name]
            if not log.messages:
                return None

            retained = {}
            for msg in log.messages:
                if not msg.has_key():
                    continue
                if msg.is_tombstone():
                    retained.pop(msg.key(), None)
                else:
                    retained[msg.key()] = msg.id()

            log.horizon = Horizon(
                position=log.ids[-1],
                retained=retained,
            )
        logger.info('compacted {} up to {}: {} keys retained'.format(
            name,
            log.horizon.position,
            len(retained),
        ))
        return log.horizon

    def connect(self, topic: str) -> MemoryHandle:
        self.connect_count += 1
        if not self.reachable:
            raise ConnectError('unable to connect to broker for topic {}'.format(topic))

        name = topics.normalize(topic)
        with self._cond:
            log = self._logs.get(name)
            if log is None:
                if not self.auto_create_topics:
                    raise ConnectError('topic does not exist: {}'.format(name))
                log = self._get_or_create(name)
        return MemoryHandle(name, log)

    def seek_to_earliest(self, handle: MemoryHandle):
        with self._cond:
            handle.position = 0

    def seek_to_latest(self, handle: MemoryHandle):
        with self._cond:
            handle.position = len(handle.log.messages)

    def seek_after(self, handle: MemoryHandle, message_id: MessageId):
        with self._cond:
            handle.position = bisect.bisect_right(handle.log.ids, message_id)

    def _take(self, handle: MemoryHandle) -> Optional[Message]:
        if handle.released.is_set():
            return None
        if handle.position >= len(handle.log.messages):
            return None
        msg = handle.log.messages[handle.position]
        handle.position += 1
        return msg

    def try_take_next(self, handle: MemoryHandle) -> Optional[Message]:
        with self._cond:
            return self._take(handle)

    def wait_take_next(self,
                       handle: MemoryHandle,
                       deadline: Optional[float],
                       cancelled: threading.Event) -> Optional[Message]:
        with self._cond:
            while True:
                if cancelled.is_set() or handle.released.is_set():
                    return None

                msg = self._take(handle)
                if msg is not None:
                    return msg

                if deadline is None:
                    self._cond.wait()
                    continue

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                self._cond.wait(remaining)

    def compaction_horizon(self, handle: MemoryHandle) -> Optional[Horizon]:
        with self._cond:
            return handle.log.horizon

    def release(self, handle: MemoryHandle):
        with self._cond:
            handle.released.set()
            # wake any reader blocked in wait_take_next
            self._cond.notify_all()
