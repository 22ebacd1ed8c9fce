import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Mapping, Optional

from topicreader.message import Message, MessageId


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Horizon:
    """
    Result of the last completed compaction of a topic.

    position is the id of the last message covered by compaction. retained
    maps each key in the compacted prefix to the id of the message that
    survived compaction. Keys whose final message was a tombstone are absent.
    """
    position: MessageId
    retained: Mapping[str, MessageId] = field(default_factory=dict)

    def covers(self, message_id: MessageId) -> bool:
        return message_id <= self.position

    def retains(self, message: Message) -> bool:
        return self.retained.get(message.key()) == message.id()


class Handle:
    """
    A connection to a single topic, returned by MessageSource.connect.
    """
    def __init__(self, topic: str):
        self.topic = topic
        self.released = threading.Event()


class MessageSource(ABC):
    """
    Abstract base class for message sources.

    A message source delivers the ordered messages of one topic per handle.
    It owns the connection to the underlying broker; readers only drive it
    through the operations below.
    """
    @abstractmethod
    def connect(self, topic: str) -> Handle:
        """
        Connects to the topic.

        :raises ConnectError: if the broker cannot be reached or the topic
            does not exist.
        """
        pass

    @abstractmethod
    def seek_to_earliest(self, handle: Handle):
        pass

    @abstractmethod
    def seek_to_latest(self, handle: Handle):
        """
        Positions the handle at the current tail. Only messages published
        after this call are delivered.
        """
        pass

    @abstractmethod
    def seek_after(self, handle: Handle, message_id: MessageId):
        pass

    @abstractmethod
    def try_take_next(self, handle: Handle) -> Optional[Message]:
        pass

    @abstractmethod
    def wait_take_next(self,
                       handle: Handle,
                       deadline: Optional[float],
                       cancelled: threading.Event) -> Optional[Message]:
        """
        Blocks until a message is available, the monotonic deadline passes
        or cancelled is set. Returns None in the latter two cases.
        """
        pass

    @abstractmethod
    def compaction_horizon(self, handle: Handle) -> Optional[Horizon]:
        pass

    @abstractmethod
    def release(self, handle: Handle):
        pass
