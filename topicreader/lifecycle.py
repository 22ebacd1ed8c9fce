import logging
import sys

from topicreader import sources
from topicreader.config import Conf
from topicreader.errors import ReaderTimeoutError
from topicreader.reader import create_reader

logger = logging.getLogger(__name__)


def read(conf: Conf, source=None, out=sys.stdout, max_msgs=None, timeout=None, follow=False):
    """
    Reads the configured topic and writes each payload to out, one per line.

    Without follow, reading stops once the backlog is exhausted. With follow,
    reading continues until max_msgs messages are read or no message arrives
    within timeout seconds.

    :return: the number of messages written
    """
    if source is None:
        source = sources.new_source_from_conf(conf.source)

    num_read = 0
    with create_reader(source, conf.reader) as reader:
        while not (max_msgs and num_read >= max_msgs):
            if not follow and not reader.has_next():
                logger.info('backlog exhausted on {}'.format(reader.topic()))
                break

            try:
                msg = reader.next(timeout=timeout)
            except ReaderTimeoutError as e:
                logger.info(str(e))
                break

            out.write(msg.payload().decode(errors='replace'))
            out.write('\n')
            num_read += 1

        logger.info('read {} messages from {}, last message id: {}'.format(
            num_read,
            reader.topic(),
            reader.last_message_id(),
        ))
    return num_read
