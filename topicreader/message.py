import struct
from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar, Optional


MAX_ID = 2 ** 63 - 1

_PACKED = struct.Struct('>qq')


@dataclass(frozen=True, order=True)
class MessageId:
    """
    Position of a message within a topic's log.

    Ids are totally ordered. EARLIEST and LATEST are symbolic positions used
    to configure where a reader starts; they never identify a delivered
    message.
    """
    ledger_id: int
    entry_id: int

    EARLIEST: ClassVar['MessageId']
    LATEST: ClassVar['MessageId']

    @property
    def is_symbolic(self) -> bool:
        return self == MessageId.EARLIEST or self == MessageId.LATEST

    def __str__(self):
        if self == MessageId.EARLIEST:
            return 'earliest'
        if self == MessageId.LATEST:
            return 'latest'
        return '{}:{}'.format(self.ledger_id, self.entry_id)

    def serialize(self) -> bytes:
        return _PACKED.pack(self.ledger_id, self.entry_id)

    @classmethod
    def deserialize(cls, bs: bytes) -> 'MessageId':
        ledger_id, entry_id = _PACKED.unpack(bs)
        return cls(ledger_id, entry_id)

    @classmethod
    def parse(cls, s: str) -> 'MessageId':
        """
        Parses the text form of a message id: "earliest", "latest" or
        "<ledger_id>:<entry_id>".
        """
        cleaned = s.strip().lower()
        if cleaned == 'earliest':
            return cls.EARLIEST
        if cleaned == 'latest':
            return cls.LATEST

        ledger_id, sep, entry_id = cleaned.partition(':')
        if not sep:
            raise ValueError('invalid message id: {!r}'.format(s))
        return cls(int(ledger_id), int(entry_id))


MessageId.EARLIEST = MessageId(-1, -1)
MessageId.LATEST = MessageId(MAX_ID, MAX_ID)


class Message:
    def __init__(self,
                 id: MessageId,
                 payload: bytes,
                 key: Optional[str] = None,
                 topic: Optional[str] = None,
                 publish_time: Optional[datetime] = None):
        self._id = id
        self._payload = payload
        self._key = key
        self._topic = topic
        self._publish_time = publish_time

    def id(self) -> MessageId:
        return self._id

    def payload(self) -> bytes:
        return self._payload

    def key(self) -> Optional[str]:
        return self._key

    def has_key(self) -> bool:
        return self._key is not None

    def topic(self) -> Optional[str]:
        return self._topic

    def publish_time(self) -> Optional[datetime]:
        return self._publish_time

    def is_tombstone(self) -> bool:
        # a keyed message without content deletes its key on compaction
        return self.has_key() and not self._payload

    def __repr__(self):
        return 'Message(id={}, key={!r}, payload={!r})'.format(
            self._id,
            self._key,
            self._payload,
        )
