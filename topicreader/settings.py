import os.path

LOG_LEVEL = os.environ.get('TOPICREADER_LOG_LEVEL', 'INFO')

DEFAULT_TENANT = os.environ.get('TOPICREADER_DEFAULT_TENANT', 'public')

DEFAULT_NAMESPACE = os.environ.get('TOPICREADER_DEFAULT_NAMESPACE', 'default')

# upper bound on how long has_next() may wait to tell "not yet" from "nothing"
HAS_NEXT_TIMEOUT = float(os.environ.get('TOPICREADER_HAS_NEXT_TIMEOUT', '0.1'))

# slice length for blocking kafka polls, bounds how long close() waits
KAFKA_POLL_INTERVAL = float(os.environ.get('TOPICREADER_KAFKA_POLL_INTERVAL', '0.1'))

KAFKA_CONNECT_TIMEOUT = float(os.environ.get('TOPICREADER_KAFKA_CONNECT_TIMEOUT', '10'))

VARS = {
    'DEFAULT_TENANT': DEFAULT_TENANT,
    'DEFAULT_NAMESPACE': DEFAULT_NAMESPACE,
}

PACKAGE_ROOT = os.path.dirname(__file__)
