import time
import uuid

import pytest
from testcontainers.kafka import KafkaContainer

from topicreader import config, sources
from topicreader.errors import ConnectError, ReaderTimeoutError
from topicreader.fixtures import KafkaPublisher, hello_payloads
from topicreader.kafka import create_topics, delete_topics
from topicreader.message import MessageId
from topicreader.reader import create_reader
from topicreader.sources.kafka import KafkaMessageSource

pytestmark = pytest.mark.integration


@pytest.fixture(scope="module")
def bootstrap_server():
    # Start the Kafka container
    with KafkaContainer() as kafka:
        yield kafka.get_bootstrap_server()


@pytest.fixture
def topic(bootstrap_server):
    name = 'my-reader-topic-{}'.format(uuid.uuid4().hex[:8])
    create_topics([name], bootstrap_server)
    yield name
    delete_topics([name], bootstrap_server)


def new_source(bootstrap_server):
    return sources.new_source_from_conf(config.Source(
        type='kafka',
        kafka=config.KafkaSource(brokers=[bootstrap_server]),
    ))


def test_reader_connect_error():
    source = KafkaMessageSource(
        kconf={
            'bootstrap.servers': 'invalid-hostname:9092',
            'group.id': 'test_reader_connect_error',
        },
        connect_timeout=2,
    )

    with pytest.raises(ConnectError):
        create_reader(source, config.Reader(
            topic='my-topic',
            start_message_id=MessageId.EARLIEST,
        ))


def test_reader_missing_topic(bootstrap_server):
    with pytest.raises(ConnectError):
        create_reader(new_source(bootstrap_server), config.Reader(
            topic='does-not-exist-{}'.format(uuid.uuid4().hex[:8]),
            start_message_id=MessageId.EARLIEST,
        ))


def test_reader_latest(bootstrap_server, topic):
    publisher = KafkaPublisher(bootstrap_servers=bootstrap_server, topic=topic)
    publisher.publish([b'backlog'])

    reader = create_reader(new_source(bootstrap_server), config.Reader(
        topic=topic,
        start_message_id=MessageId.LATEST,
        has_next_timeout=5.0,
    ))

    try:
        assert reader.topic() == 'persistent://public/default/{}'.format(topic)

        for payload in hello_payloads(10):
            publisher.publish([payload])

            assert reader.has_next()
            msg = reader.next(timeout=10)
            assert msg.payload() == payload

        assert not reader.has_next()
    finally:
        reader.close()


def test_reader_earliest_and_resume(bootstrap_server, topic):
    KafkaPublisher(bootstrap_servers=bootstrap_server, topic=topic).publish(hello_payloads(10))
    source = new_source(bootstrap_server)

    with create_reader(source, config.Reader(topic=topic, start_message_id=MessageId.EARLIEST)) as reader:
        messages = [reader.next(timeout=10) for _ in range(5)]
        resume_from = reader.last_message_id()

    assert [m.payload() for m in messages] == hello_payloads(5)
    ids = [m.id() for m in messages]
    assert ids == sorted(set(ids))

    with create_reader(source, config.Reader(topic=topic, start_message_id=resume_from)) as reader:
        assert reader.next(timeout=10).payload() == b'hello-5'


def test_reader_timeout(bootstrap_server, topic):
    KafkaPublisher(bootstrap_servers=bootstrap_server, topic=topic).publish(hello_payloads(1))

    with create_reader(new_source(bootstrap_server), config.Reader(
        topic=topic,
        start_message_id=MessageId.EARLIEST,
    )) as reader:
        assert reader.next(timeout=10).payload() == b'hello-0'

        start = time.monotonic()
        with pytest.raises(ReaderTimeoutError):
            reader.next(timeout=0.5)
        assert time.monotonic() - start < 2
