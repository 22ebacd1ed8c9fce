import uuid

from topicreader import config

from .base import MessageSource, Handle, Horizon
from .kafka import KafkaMessageSource
from .memory import MemoryBroker


def new_consumer_conf_from_conf(conf: config.KafkaSource) -> dict:
    kconf = {
        'bootstrap.servers': ','.join(conf.brokers),
        # readers assign partitions manually, the group is never joined
        'group.id': conf.group_id or 'topicreader-{}'.format(uuid.uuid4().hex[:10]),
        'enable.auto.commit': False,
        'enable.partition.eof': True,
    }

    if conf.security_protocol:
        kconf['security.protocol'] = conf.security_protocol

    if conf.sasl:
        kconf['sasl.mechanism'] = conf.sasl.mechanism
        kconf['sasl.username'] = conf.sasl.username
        kconf['sasl.password'] = conf.sasl.password

    if conf.ssl:
        kconf['ssl.ca.location'] = conf.ssl.ca_location
        kconf['ssl.certificate.location'] = conf.ssl.certificate_location
        kconf['ssl.key.location'] = conf.ssl.key_location
        kconf['ssl.key.password'] = conf.ssl.key_password
        kconf['ssl.endpoint.identification.algorithm'] = conf.ssl.endpoint_identification_algorithm

    return kconf


def new_source_from_conf(source_conf: config.Source) -> MessageSource:
    if source_conf.type == 'kafka':
        return KafkaMessageSource(
            kconf=new_consumer_conf_from_conf(source_conf.kafka),
            partition=source_conf.kafka.partition,
        )
    elif source_conf.type == 'memory':
        memory_conf = source_conf.memory or config.MemorySource()
        return MemoryBroker(
            auto_create_topics=memory_conf.auto_create_topics,
        )

    raise NotImplementedError('unsupported source type: {}'.format(source_conf.type))
