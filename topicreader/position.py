import logging
from dataclasses import dataclass
from typing import Optional

from topicreader import config
from topicreader.message import MessageId
from topicreader.sources.base import MessageSource, Handle, Horizon


logger = logging.getLogger(__name__)


@dataclass
class Cursor:
    last_delivered: Optional[MessageId] = None
    horizon: Optional[Horizon] = None

    def advance(self, message_id: MessageId):
        if self.last_delivered is not None and message_id <= self.last_delivered:
            raise RuntimeError('cursor cannot move backwards: {} <= {}'.format(
                message_id,
                self.last_delivered,
            ))
        self.last_delivered = message_id


def resolve(source: MessageSource, handle: Handle, conf: config.Reader) -> Cursor:
    """
    Seeks the handle to the configured start position and builds the
    initial cursor.

    LATEST is pinned to the tail of the topic now, so that messages published
    between construction and the first read are delivered exactly once.
    """
    start = conf.start_message_id

    if start == MessageId.EARLIEST:
        source.seek_to_earliest(handle)
        cursor = Cursor()
    elif start == MessageId.LATEST:
        source.seek_to_latest(handle)
        cursor = Cursor()
    else:
        source.seek_after(handle, start)
        cursor = Cursor(last_delivered=start)

    if conf.read_compacted:
        cursor.horizon = source.compaction_horizon(handle)

    logger.debug('resolved start position {} for {} (horizon={})'.format(
        start,
        handle.topic,
        cursor.horizon.position if cursor.horizon else None,
    ))
    return cursor
