import copy
import json
import os
from dataclasses import dataclass
from typing import Optional

from jinja2 import StrictUndefined, Template, UndefinedError
from yaml import safe_load

from topicreader import settings, topics
from topicreader.errors import InvalidConfigurationError
from topicreader.message import MessageId


@dataclass
class KafkaSSLConfig:
    ca_location: str  # Path to the CA certificate
    certificate_location: str  # Path to the client certificate
    key_location: str  # Path to the client private key
    key_password: Optional[str] = None
    endpoint_identification_algorithm: Optional[str] = None  # e.g., https, none (default is https)


@dataclass
class KafkaSASLConfig:
    mechanism: str  # SASL mechanism (e.g., PLAIN, SCRAM-SHA-256)
    username: str  # SASL username
    password: str  # SASL password


@dataclass
class KafkaSource:
    brokers: [str]
    partition: int = 0
    group_id: Optional[str] = None
    security_protocol: Optional[str] = None  # Security protocol (e.g., PLAINTEXT, SSL, SASL_SSL)
    ssl: Optional[KafkaSSLConfig] = None  # SSL configuration
    sasl: Optional[KafkaSASLConfig] = None  # SASL configuration


@dataclass
class MemorySource:
    auto_create_topics: bool = True


@dataclass
class Source:
    type: str
    kafka: Optional[KafkaSource] = None
    memory: Optional[MemorySource] = None


@dataclass
class Reader:
    topic: Optional[str] = None
    start_message_id: Optional[MessageId] = None
    read_compacted: bool = False
    has_next_timeout: float = settings.HAS_NEXT_TIMEOUT
    reader_name: Optional[str] = None


@dataclass
class Conf:
    source: Source
    reader: Reader


def validate(conf: Reader) -> str:
    """
    Validates a reader configuration without touching any broker.

    Rules are checked in order and the first failure wins:
    1. topic must be non-empty after normalization.
    2. start_message_id must be set.

    :return: the normalized topic
    :raises InvalidConfigurationError:
    """
    if not conf.topic:
        raise InvalidConfigurationError('topic')

    try:
        topic = topics.normalize(conf.topic)
    except ValueError as e:
        raise InvalidConfigurationError('topic', str(e)) from e

    if conf.start_message_id is None:
        raise InvalidConfigurationError('start_message_id')

    if not isinstance(conf.start_message_id, MessageId):
        raise InvalidConfigurationError(
            'start_message_id',
            'start_message_id must be a MessageId, got {!r}'.format(conf.start_message_id),
        )

    return topic


def render_config(path: str, setting_overrides={}) -> dict:
    """
    Renders a config file as a jinja2 template and loads the result as yaml.

    Template variables come from settings.VARS, then TOPICREADER_* environment
    variables, then setting_overrides. A variable missing from all three is an
    error rather than an empty string, so `topic: {{ TOPIC }}` never silently
    renders a reader without a topic.

    :raises InvalidConfigurationError: on undefined variables or when the
        document is not a mapping.
    """
    with open(path) as f:
        template = Template(f.read(), undefined=StrictUndefined)

    settings_vars = copy.deepcopy(settings.VARS)

    for key, value in os.environ.items():
        if key.startswith('TOPICREADER_'):
            settings_vars[key] = value

    settings_vars.update(setting_overrides)

    try:
        rendered_template = template.render(**settings_vars)
    except UndefinedError as e:
        raise InvalidConfigurationError(
            'template',
            '{}: {}, set it in the environment or as an override'.format(path, e),
        ) from e

    conf = safe_load(rendered_template)
    if not isinstance(conf, dict):
        raise InvalidConfigurationError(
            'template',
            '{}: expected a mapping with source and reader sections'.format(path),
        )
    return conf


def new_from_path(path: str, setting_overrides={}):
    """
    Initialize a new configuration instance
    directly from the filesystem.

    :param path:
    :return:

    """
    config_dict = render_config(path, setting_overrides)
    return new_from_dict(config_dict)


def build_source_config_from_dict(conf) -> Source:
    source = Source(
        type=conf['type'],
    )

    if source.type == 'kafka':
        ssl_config = None
        if 'ssl' in conf['kafka']:
            ssl_config = KafkaSSLConfig(
                ca_location=conf['kafka']['ssl'].get('ca_location'),
                certificate_location=conf['kafka']['ssl'].get('certificate_location'),
                key_location=conf['kafka']['ssl'].get('key_location'),
                key_password=conf['kafka']['ssl'].get('key_password'),
                endpoint_identification_algorithm=conf['kafka']['ssl'].get('endpoint_identification_algorithm'),
            )

        sasl_config = None
        if 'sasl' in conf['kafka']:
            sasl_config = KafkaSASLConfig(
                mechanism=conf['kafka']['sasl']['mechanism'],
                username=conf['kafka']['sasl']['username'],
                password=conf['kafka']['sasl']['password'],
            )

        source.kafka = KafkaSource(
            brokers=conf['kafka']['brokers'],
            partition=conf['kafka'].get('partition', 0),
            group_id=conf['kafka'].get('group_id'),
            security_protocol=conf['kafka'].get('security_protocol'),
            ssl=ssl_config,
            sasl=sasl_config,
        )
    elif source.type == 'memory':
        source.memory = MemorySource(
            auto_create_topics=conf.get('memory', {}).get('auto_create_topics', True),
        )
    else:
        raise NotImplementedError('unsupported source type: {}'.format(source.type))

    return source


def build_reader_config_from_dict(conf) -> Reader:
    start_message_id = conf.get('start_message_id')
    if isinstance(start_message_id, int) and not isinstance(start_message_id, bool):
        # yaml reads an unquoted 1:5 as the base 60 integer 65
        raise InvalidConfigurationError(
            'start_message_id',
            'start_message_id was read as the number {}, quote explicit ids, e.g. "1:5"'.format(
                start_message_id,
            ),
        )

    if start_message_id is not None:
        try:
            start_message_id = MessageId.parse(str(start_message_id))
        except ValueError as e:
            raise InvalidConfigurationError('start_message_id', str(e)) from e

    return Reader(
        topic=conf.get('topic'),
        start_message_id=start_message_id,
        read_compacted=conf.get('read_compacted', False),
        has_next_timeout=conf.get('has_next_timeout', settings.HAS_NEXT_TIMEOUT),
        reader_name=conf.get('reader_name'),
    )


def new_from_dict(conf):
    return Conf(
        source=build_source_config_from_dict(conf['source']),
        reader=build_reader_config_from_dict(conf.get('reader', {})),
    )


_placeholders = {
    "string": "<string>",
    "integer": "<integer>",
    "boolean": "<boolean>",
    "number": "<number>",
    "array": "<array>",
    "object": "<object>",
}


def _comment(schema: dict, required: bool) -> str:
    parts = []
    if schema.get("description"):
        parts.append(schema["description"])
    if required:
        parts.append("Required.")
    if "default" in schema:
        parts.append("Default: {}.".format(json.dumps(schema["default"])))
    return " ".join(parts)


def jsonschema_to_yaml(jsonschema_file) -> [str]:
    """
    Renders the config schema as an annotated example config, one line per
    list item, for `config example`.

    Descriptions become comments, followed by "Required." for keys the
    schema requires and "Default: <value>." where the schema declares one.
    Scalars are shown as <type> placeholders and enums as 'a | b'.
    """
    with open(jsonschema_file, 'r') as file:
        main_schema = json.load(file)

    def process_properties(schema, level=0):
        yaml_output = []
        indent = "  " * level
        required = set(schema.get("required", []))

        for key, value in schema.get("properties", {}).items():
            comment = _comment(value, key in required)
            if comment:
                yaml_output.append(f"{indent}# {comment}")

            if "enum" in value:
                placeholder = " | ".join(map(str, value["enum"]))
            else:
                placeholder = _placeholders.get(value.get("type"), "<unknown>")

            if value.get("type") == "object":
                yaml_output.append(f"{indent}{key}:")
                yaml_output.extend(process_properties(value, level + 1))
            elif value.get("type") == "array":
                yaml_output.append(f"{indent}{key}:")
                items = value.get("items", {})
                if "properties" in items:
                    yaml_output.append(f"{indent}  -")
                    yaml_output.extend(process_properties(items, level + 2))
                else:
                    yaml_output.append(f"{indent}  - {_placeholders.get(items.get('type'), placeholder)}")
            else:
                yaml_output.append(f"{indent}{key}: {placeholder}")

        return yaml_output

    return process_properties(main_schema)
