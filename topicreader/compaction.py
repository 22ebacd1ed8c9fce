import logging
from typing import Optional

from topicreader.message import Message
from topicreader.sources.base import Horizon


logger = logging.getLogger(__name__)


class CompactionView:
    """
    CompactionView filters a topic's raw message stream down to its compacted
    form.

    Compaction is computed by the broker; the view only applies the horizon
    it reports:
    - Keyed messages at or before the horizon are visible only if they are
      the message compaction retained for their key.
    - Keyless messages are always visible.
    - Everything after the horizon is visible, in publish order.

    Without a horizon the topic has never been compacted and every message
    is visible.
    """
    def __init__(self, horizon: Optional[Horizon]):
        self.horizon = horizon

    def admits(self, message: Message) -> bool:
        if self.horizon is None:
            return True

        if not self.horizon.covers(message.id()):
            return True

        if not message.has_key():
            return True

        return self.horizon.retains(message)


class PassThroughView(CompactionView):
    def __init__(self):
        super().__init__(horizon=None)

    def admits(self, message: Message) -> bool:
        return True
