from confluent_kafka import KafkaException
from confluent_kafka.admin import AdminClient, NewTopic


def create_topics(topics, bootstrap_server, compacted=False):
    admin_client = AdminClient({'bootstrap.servers': bootstrap_server})
    config = {}
    if compacted:
        config['cleanup.policy'] = 'compact'

    fs = admin_client.create_topics(
        [NewTopic(topic, num_partitions=1, replication_factor=1, config=config) for topic in topics],
        operation_timeout=30,
    )
    for f in fs.values():
        f.result()


def delete_topics(topics, bootstrap_server):
    admin_client = AdminClient({'bootstrap.servers': bootstrap_server})
    fs = admin_client.delete_topics(
        topics=topics,
        operation_timeout=30,
    )
    for f in fs.values():
        try:
            f.result()
        except KafkaException:
            pass
