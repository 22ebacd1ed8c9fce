import logging
import threading
import time
import typing
from datetime import datetime, timezone

from confluent_kafka import (
    Consumer,
    KafkaError,
    KafkaException,
    TopicPartition,
    OFFSET_BEGINNING,
)

from topicreader import settings, topics
from topicreader.errors import ConnectError, InvalidConfigurationError, SourceError
from topicreader.message import Message, MessageId

from .base import MessageSource, Handle, Horizon


logger = logging.getLogger(__name__)


def kafka_topic_name(topic: str) -> str:
    """
    Maps a fully qualified topic onto a kafka topic name.

    Topics in the default tenant and namespace keep their short name, others
    are prefixed with "<tenant>.<namespace>." or, for legacy names,
    "<tenant>.<cluster>.<namespace>.".

    :raises InvalidConfigurationError: for non-persistent topics, kafka logs
        are always persistent.
    """
    t = topics.parse(topic)
    if t.domain != topics.PERSISTENT:
        raise InvalidConfigurationError(
            'topic',
            'kafka does not support {} topics: {}'.format(t.domain, topic),
        )

    if t.cluster:
        return '{}.{}.{}.{}'.format(t.tenant, t.cluster, t.namespace, t.name)
    if t.tenant == settings.DEFAULT_TENANT and t.namespace == settings.DEFAULT_NAMESPACE:
        return t.name
    return '{}.{}.{}'.format(t.tenant, t.namespace, t.name)


class KafkaHandle(Handle):
    def __init__(self, topic: str, kafka_topic: str, partition: int, consumer):
        super().__init__(topic)
        self.kafka_topic = kafka_topic
        self.partition = partition
        self.consumer = consumer
        # librdkafka consumers are not safe to close while polling
        self.lock = threading.Lock()

    def topic_partition(self, offset) -> TopicPartition:
        return TopicPartition(self.kafka_topic, self.partition, offset)


class KafkaMessageSource(MessageSource):
    """
    Reads a single kafka partition through a manually assigned consumer.

    No consumer group offsets are committed; the reader owns its position.
    Kafka compacts logs in place so consumers always observe the cleaned
    log, and no compaction horizon is reported.
    """
    def __init__(self,
                 kconf: dict,
                 partition: int = 0,
                 poll_interval: float = settings.KAFKA_POLL_INTERVAL,
                 connect_timeout: float = settings.KAFKA_CONNECT_TIMEOUT,
                 consumer_factory=Consumer):
        self._kconf = kconf
        self._partition = partition
        self._poll_interval = poll_interval
        self._connect_timeout = connect_timeout
        self._consumer_factory = consumer_factory

    def connect(self, topic: str) -> KafkaHandle:
        name = topics.normalize(topic)
        kafka_topic = kafka_topic_name(name)

        try:
            consumer = self._consumer_factory(self._kconf)
        except KafkaException as e:
            raise ConnectError('unable to create consumer: {}'.format(e)) from e

        try:
            metadata = consumer.list_topics(
                topic=kafka_topic,
                timeout=self._connect_timeout,
            )
        except KafkaException as e:
            consumer.close()
            raise ConnectError('unable to reach brokers {}: {}'.format(
                self._kconf.get('bootstrap.servers'),
                e,
            )) from e

        topic_metadata = metadata.topics.get(kafka_topic)
        if topic_metadata is None or topic_metadata.error is not None:
            consumer.close()
            raise ConnectError('topic does not exist: {} ({})'.format(
                kafka_topic,
                topic_metadata.error if topic_metadata is not None else 'missing',
            ))

        if self._partition not in topic_metadata.partitions:
            consumer.close()
            raise ConnectError('partition {} does not exist for topic {}'.format(
                self._partition,
                kafka_topic,
            ))

        logger.debug('connected to kafka topic {} [{}]'.format(kafka_topic, self._partition))
        return KafkaHandle(name, kafka_topic, self._partition, consumer)

    def _assign(self, handle: KafkaHandle, offset):
        with handle.lock:
            handle.consumer.assign([handle.topic_partition(offset)])

    def seek_to_earliest(self, handle: KafkaHandle):
        self._assign(handle, OFFSET_BEGINNING)

    def seek_to_latest(self, handle: KafkaHandle):
        # pin the tail now instead of relying on OFFSET_END, which resolves
        # lazily on the first fetch
        with handle.lock:
            try:
                _, high = handle.consumer.get_watermark_offsets(
                    handle.topic_partition(OFFSET_BEGINNING),
                    timeout=self._connect_timeout,
                    cached=False,
                )
            except KafkaException as e:
                raise ConnectError('unable to fetch watermarks for {}: {}'.format(
                    handle.kafka_topic,
                    e,
                )) from e
            handle.consumer.assign([handle.topic_partition(high)])

    def seek_after(self, handle: KafkaHandle, message_id: MessageId):
        # the ledger of a kafka message id is its partition
        if message_id.ledger_id != handle.partition:
            raise InvalidConfigurationError(
                'start_message_id',
                'message id {} belongs to partition {}, reader is on {} [{}]'.format(
                    message_id,
                    message_id.ledger_id,
                    handle.kafka_topic,
                    handle.partition,
                ),
            )
        self._assign(handle, message_id.entry_id + 1)

    def _to_message(self, handle: KafkaHandle, msg) -> typing.Optional[Message]:
        if msg is None:
            return None

        if msg.error():
            if msg.error().code() == KafkaError._PARTITION_EOF:
                return None
            # unknown error raise to caller
            raise SourceError(str(msg.error()))

        key = msg.key()
        _, timestamp_ms = msg.timestamp()
        return Message(
            id=MessageId(msg.partition(), msg.offset()),
            payload=msg.value() or b'',
            key=key.decode() if key is not None else None,
            topic=handle.topic,
            publish_time=datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
            if timestamp_ms and timestamp_ms > 0 else None,
        )

    def try_take_next(self, handle: KafkaHandle) -> typing.Optional[Message]:
        with handle.lock:
            if handle.released.is_set():
                return None
            msg = handle.consumer.poll(timeout=0)
        return self._to_message(handle, msg)

    def wait_take_next(self, handle, deadline, cancelled) -> typing.Optional[Message]:
        while not (cancelled.is_set() or handle.released.is_set()):
            timeout = self._poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                timeout = min(timeout, remaining)

            with handle.lock:
                if handle.released.is_set():
                    return None
                msg = handle.consumer.poll(timeout=timeout)

            message = self._to_message(handle, msg)
            if message is not None:
                return message
        return None

    def compaction_horizon(self, handle: KafkaHandle) -> typing.Optional[Horizon]:
        return None

    def release(self, handle: KafkaHandle):
        if handle.released.is_set():
            return
        handle.released.set()
        with handle.lock:
            handle.consumer.close()
