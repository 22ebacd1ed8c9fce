import enum


class Result(str, enum.Enum):
    INVALID_CONFIGURATION = "invalid_configuration"
    CONNECT_ERROR = "connect_error"
    TIMEOUT = "timeout"
    CLOSED_READER = "closed_reader"


class ReaderError(Exception):
    """
    Base class for all errors surfaced by a reader.

    The ``result`` attribute classifies the failure so callers can decide
    whether it is worth retrying.
    """
    result: Result = None

    def __init__(self, message: str = ''):
        super().__init__(message)
        self.message = message


class InvalidConfigurationError(ReaderError):
    result = Result.INVALID_CONFIGURATION

    def __init__(self, field: str, message: str = ''):
        super().__init__(message or '{} is required'.format(field))
        self.field = field


class ConnectError(ReaderError):
    result = Result.CONNECT_ERROR


class SourceError(ConnectError):
    pass


class ReaderTimeoutError(ReaderError):
    result = Result.TIMEOUT


class ClosedReaderError(ReaderError):
    result = Result.CLOSED_READER

    def __init__(self, message: str = 'reader is closed'):
        super().__init__(message)
