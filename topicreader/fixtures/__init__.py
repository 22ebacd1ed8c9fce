import logging
import socket
from typing import List, Optional

from confluent_kafka import Producer

from topicreader.sources.memory import MemoryBroker

logger = logging.getLogger(__name__)


def hello_payloads(num_messages, prefix='hello'):
    return ['{}-{}'.format(prefix, i).encode() for i in range(num_messages)]


class MemoryPublisher:
    def __init__(self, broker: MemoryBroker, topic, key: Optional[str] = None):
        self.broker = broker
        self.topic = topic
        self.key = key

    def publish(self, payloads: List[bytes]):
        ids = []
        for payload in payloads:
            ids.append(self.broker.publish(self.topic, payload, key=self.key))
        return ids


class KafkaPublisher:
    """
    Publishes fixture payloads to a kafka topic, optionally all under the
    same key.
    """
    def __init__(self,
                 bootstrap_servers,
                 topic,
                 key=None,
                 security_protocol=None,
                 sasl_mechanism=None,
                 sasl_username=None,
                 sasl_password=None,
                ):
        self.bootstrap_servers = bootstrap_servers
        self.topic = topic
        self.key = key
        self.security_protocol = security_protocol
        self.sasl_mechanism = sasl_mechanism
        self.sasl_username = sasl_username
        self.sasl_password = sasl_password

    def publish(self, payloads: List[bytes]):
        conf = {
            'bootstrap.servers': self.bootstrap_servers,
            'client.id': socket.gethostname()
        }

        if self.security_protocol:
            conf['security.protocol'] = self.security_protocol
        if self.sasl_mechanism:
            conf['sasl.mechanism'] = self.sasl_mechanism
        if self.sasl_username and self.sasl_password:
            conf['sasl.username'] = self.sasl_username
            conf['sasl.password'] = self.sasl_password

        producer = Producer(conf)
        for i, payload in enumerate(payloads):
            producer.produce(self.topic, value=payload, key=self.key)
            if i % 10000 == 0:
                producer.flush()
        producer.flush()
        logger.info('published {} messages to {}'.format(len(payloads), self.topic))
