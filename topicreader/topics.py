from dataclasses import dataclass
from typing import Optional

from topicreader import settings


PERSISTENT = 'persistent'
NON_PERSISTENT = 'non-persistent'

DOMAINS = (PERSISTENT, NON_PERSISTENT)


@dataclass(frozen=True)
class TopicName:
    domain: str
    tenant: str
    namespace: str
    name: str
    cluster: Optional[str] = None

    def __str__(self):
        parts = [self.tenant]
        if self.cluster:
            parts.append(self.cluster)
        parts.extend([self.namespace, self.name])
        return '{}://{}'.format(self.domain, '/'.join(parts))

    @property
    def short_name(self) -> str:
        return self.name


def parse(topic: str) -> TopicName:
    """
    Parses a topic into its fully qualified components.

    Accepted forms:
    - my-topic
    - tenant/namespace/my-topic
    - tenant/cluster/namespace/my-topic (legacy)
    - persistent://tenant/namespace/my-topic
    - non-persistent://tenant/namespace/my-topic

    :raises ValueError: if the topic is malformed.
    """
    if topic is None or not topic.strip():
        raise ValueError('topic is empty')

    topic = topic.strip()
    domain = PERSISTENT
    rest = topic
    if '://' in topic:
        domain, rest = topic.split('://', 1)
        if domain not in DOMAINS:
            raise ValueError('unsupported topic domain: {}'.format(domain))

    parts = rest.split('/')
    if any(not p for p in parts):
        raise ValueError('invalid topic name: {}'.format(topic))

    if len(parts) == 1 and '://' not in topic:
        return TopicName(
            domain=domain,
            tenant=settings.DEFAULT_TENANT,
            namespace=settings.DEFAULT_NAMESPACE,
            name=parts[0],
        )
    elif len(parts) == 3:
        return TopicName(
            domain=domain,
            tenant=parts[0],
            namespace=parts[1],
            name=parts[2],
        )
    elif len(parts) == 4:
        return TopicName(
            domain=domain,
            tenant=parts[0],
            cluster=parts[1],
            namespace=parts[2],
            name=parts[3],
        )

    raise ValueError('invalid topic name: {}'.format(topic))


def normalize(topic: str) -> str:
    return str(parse(topic))
