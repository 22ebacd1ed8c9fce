import logging

from topicreader import settings


def init():
    logging.getLogger('confluent_kafka').setLevel(logging.WARN)
    logging.getLogger('testcontainers').setLevel(logging.WARN)
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.StreamHandler()
        ]
    )
