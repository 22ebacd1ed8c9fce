import json
import logging
import os

import click
import jsonschema
from opentelemetry import metrics as otelmetrics
from opentelemetry.exporter.prometheus import PrometheusMetricReader
from opentelemetry.sdk.metrics import MeterProvider
from prometheus_client import start_http_server

from topicreader import logging as topicreader_logging, settings
from topicreader.config import new_from_path, render_config, jsonschema_to_yaml
from topicreader.fixtures import KafkaPublisher, hello_payloads
from topicreader.lifecycle import read


logger = logging.getLogger(__name__)


@click.group()
def cli():
    pass


@click.command(name='read', help='Read a topic and print message payloads.')
@click.argument('config')
@click.option(
    '--max-msgs',
    type=int,
    default=None,
    help='Stop after reading this number of messages.',
)
@click.option(
    '--timeout',
    type=float,
    default=None,
    help='Stop when no message arrives within this many seconds.',
)
@click.option(
    '--follow',
    is_flag=True,
    help='Keep reading after the backlog is exhausted.',
)
@click.option(
    '--metrics',
    type=click.Choice(['prometheus'], case_sensitive=False),
    default=None,
    help='Specify the metrics type.',
)
def read_topic(config, max_msgs, timeout, follow, metrics):
    conf = new_from_path(config)

    if metrics == 'prometheus':
        logger.info('Starting Prometheus metrics server: http://localhost:8000')
        metric_reader = PrometheusMetricReader()
        provider = MeterProvider(metric_readers=[metric_reader])
        otelmetrics.set_meter_provider(provider)
        start_http_server(port=8000)

    read(
        conf,
        max_msgs=max_msgs,
        timeout=timeout,
        follow=follow,
    )


@click.group(help='')
def config():
    pass


@click.command(name='example')
def config_example():
    schema_path = os.path.join(settings.PACKAGE_ROOT, 'static', 'schemas', 'config.json')
    example_yml = jsonschema_to_yaml(schema_path)
    print('\n'.join(example_yml))


@click.command(name='validate', help='Validate the configuration file.')
@click.argument('config')
def config_validate(config):
    schema_path = os.path.join(settings.PACKAGE_ROOT, 'static', 'schemas', 'config.json')
    with open(schema_path, 'r') as f:
        schema = json.load(f)
    # load the file and render env vars
    config_dict = render_config(config)
    # validate against json schema
    jsonschema.validate(config_dict, schema)


@click.group(help='Development commands.')
def dev():
    pass


@click.command(name='publish', help='Publish hello-N messages to a kafka topic.')
@click.argument('topic')
@click.option('--bootstrap-servers', default='localhost:9092')
@click.option('--num-messages', type=int, default=10)
@click.option('--key', default=None, help='Publish every message under this key.')
def dev_publish(topic, bootstrap_servers, num_messages, key):
    publisher = KafkaPublisher(
        bootstrap_servers=bootstrap_servers,
        topic=topic,
        key=key,
    )
    publisher.publish(hello_payloads(num_messages))


config.add_command(config_validate)
config.add_command(config_example)
dev.add_command(dev_publish)

cli.add_command(read_topic)
cli.add_command(dev)
cli.add_command(config)


if __name__ == '__main__':
    topicreader_logging.init()
    cli()
