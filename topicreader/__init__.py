from topicreader.config import Reader as ReaderConfiguration
from topicreader.errors import (
    Result,
    ReaderError,
    InvalidConfigurationError,
    ConnectError,
    ReaderTimeoutError,
    ClosedReaderError,
)
from topicreader.message import Message, MessageId
from topicreader.reader import Reader, create_reader
