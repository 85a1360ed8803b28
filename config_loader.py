# config_loader.py

import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse

from attachment_strategy import ATTACHMENT_STRATEGIES
from config import (CONFIG_FILE, DEFAULT_TIMEOUT, DEFAULT_RETRIES, DEFAULT_RETRY_DELAY,
                    DEFAULT_ATTACHMENT_STRATEGY, DEFAULT_ATTACHMENT_FIELD_NAME,
                    DEFAULT_EXPECTED_STATUS, DEFAULT_PROCESSED_ACTION, DEFAULT_LOG_LEVEL)
from errors import ConfigurationError
from mail_selectors import SELECTOR_TYPES, SelectorConfig, build_selector_prototypes
from processed_action import normalize_processed_action

logger = logging.getLogger(__name__)

SUPPORTED_HTTP_METHODS = frozenset(['GET', 'HEAD', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS', 'TRACE'])

LOG_LEVELS = ('debug', 'info', 'warn', 'error')

NAME_PATTERN = re.compile(r'^[0-9A-Za-z]+$')
HEADER_NAME_PATTERN = re.compile(r'^[0-9A-Za-z-]+$')

SIZE_PATTERN = re.compile(r'^([0-9]+)\s*([A-Za-z]*)$')
SIZE_FACTORS = {
    '': 1, 'b': 1,
    'k': 1000, 'kb': 1000,
    'm': 1000 ** 2, 'mb': 1000 ** 2,
    'g': 1000 ** 3, 'gb': 1000 ** 3,
    't': 1000 ** 4, 'tb': 1000 ** 4,
    'p': 1000 ** 5, 'pb': 1000 ** 5,
    'e': 1000 ** 6, 'eb': 1000 ** 6,
    'ki': 1024, 'kib': 1024,
    'mi': 1024 ** 2, 'mib': 1024 ** 2,
    'gi': 1024 ** 3, 'gib': 1024 ** 3,
    'ti': 1024 ** 4, 'tib': 1024 ** 4,
    'pi': 1024 ** 5, 'pib': 1024 ** 5,
    'ei': 1024 ** 6, 'eib': 1024 ** 6,
}

DURATION_PART_PATTERN = re.compile(r'([0-9]+(?:\.[0-9]*)?|\.[0-9]+)(ns|us|µs|ms|s|m|h)')
DURATION_FACTORS = {
    'ns': 1e-9, 'us': 1e-6, 'µs': 1e-6, 'ms': 1e-3, 's': 1.0, 'm': 60.0, 'h': 3600.0,
}


@dataclass(frozen=True)
class AttachmentsConfig:
    """
    Attachment forwarding settings of the callback.

    Attributes:
        strategy (str): 'ignore', 'bundle' or 'perAttachment'.
        field_name (str): Template for the multipart field name of each attachment.
        max_size (str): The size string as configured (e.g. '10MiB').
        max_size_bytes (int): Parsed size limit; 0 means unlimited.
    """
    strategy: str = DEFAULT_ATTACHMENT_STRATEGY
    field_name: str = DEFAULT_ATTACHMENT_FIELD_NAME
    max_size: str = ''
    max_size_bytes: int = 0


@dataclass(frozen=True)
class CallbackConfig:
    """
    The callback request template.

    Header, query parameter, form and body values may contain ${selectorName}
    placeholders.
    """
    url: str
    method: str
    timeout: str = DEFAULT_TIMEOUT
    timeout_seconds: float = 24.0
    retries: int = DEFAULT_RETRIES
    retry_delay: str = DEFAULT_RETRY_DELAY
    retry_delay_seconds: float = 0.0
    headers: tuple = field(default_factory=tuple)
    query_params: tuple = field(default_factory=tuple)
    form: tuple = field(default_factory=tuple)
    body: str = ''
    expected_status: tuple = DEFAULT_EXPECTED_STATUS
    attachments: AttachmentsConfig = field(default_factory=AttachmentsConfig)


@dataclass(frozen=True)
class ProcessingConfig:
    """
    Attributes:
        processed_action (str): 'markRead' or 'delete'.
        max_workers (int): Upper bound of concurrently dispatched emails; None means one worker per email.
    """
    processed_action: str = DEFAULT_PROCESSED_ACTION
    max_workers: Optional[int] = None


@dataclass(frozen=True)
class ServiceConfig:
    """
    The complete, validated service configuration.

    Selector prototypes are compiled once here and shared by every dispatch task.
    """
    mail_selectors: tuple
    selector_prototypes: tuple
    callback: CallbackConfig
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    log_level: str = DEFAULT_LOG_LEVEL


def parse_size_string(size):
    """
    Converts a size string into bytes.

    Supported units are B (or none), the decimal K, M, G, T, P, E (x1000) and the
    binary Ki, Mi, Gi, Ti, Pi, Ei (x1024), each optionally followed by 'B'.
    Units are case-insensitive. An empty string or '0' means unlimited (0).

    Args:
        size (str): e.g. '1024', '500MB', '200Mi', '1MiB'.

    Returns:
        int: The size in bytes.

    Raises:
        ValueError: If the string is not a number with an optional known unit.
    """
    size = (size or '').strip()
    if size in ('', '0'):
        return 0
    match = SIZE_PATTERN.match(size)
    if not match:
        raise ValueError("must be numeric with optional unit suffix (e.g., '200Mi', '1MiB', '500MB', '1024B')")
    unit = match.group(2).lower()
    if unit not in SIZE_FACTORS:
        raise ValueError(f"unknown unit '{match.group(2)}'")
    return int(match.group(1)) * SIZE_FACTORS[unit]


def parse_duration(duration):
    """
    Converts a duration string such as '24s', '500ms' or '1m30s' into seconds.

    Args:
        duration (str): One or more <number><unit> parts; units ns, us, ms, s, m, h.

    Returns:
        float: The duration in seconds.

    Raises:
        ValueError: If the string is not a valid duration.
    """
    duration = (duration or '').strip()
    if duration == '0':
        return 0.0
    if not duration:
        raise ValueError("duration is empty")

    total = 0.0
    position = 0
    while position < len(duration):
        match = DURATION_PART_PATTERN.match(duration, position)
        if not match:
            raise ValueError(f"invalid duration '{duration}'")
        total += float(match.group(1)) * DURATION_FACTORS[match.group(2)]
        position = match.end()
    return total


def _require_dict(value, context):
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"{context} must be an object.")
    return value


def _parse_key_values(items, name_pattern, context):
    if items is None:
        return ()
    if not isinstance(items, list):
        raise ConfigurationError(f"{context} must be a list of {{key, value}} objects.")

    pairs = []
    for item in items:
        if not isinstance(item, dict) or 'key' not in item:
            raise ConfigurationError(f"{context} entries must be objects with 'key' and 'value'.")
        key = str(item['key'])
        if not name_pattern.match(key):
            raise ConfigurationError(f"{context}[{key}] invalid key: must match {name_pattern.pattern}")
        value = item.get('value')
        pairs.append((key, '' if value is None else str(value)))
    return tuple(pairs)


def _parse_int(value, context, default):
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{context} must be an integer (got {value!r}).")
    return value


def _parse_selectors(items):
    if items is None:
        return ()
    if not isinstance(items, list):
        raise ConfigurationError("mailSelectors must be a list.")

    selectors = []
    for item in items:
        item = _require_dict(item, 'mailSelectors entry')
        name = str(item.get('name', ''))
        if not NAME_PATTERN.match(name):
            raise ConfigurationError(f"mailSelectors.name must match ^[0-9A-Za-z]+$: '{name}'")

        selector_type = item.get('type')
        if selector_type not in SELECTOR_TYPES:
            raise ConfigurationError(
                f"mailSelectors.type not supported: '{selector_type}' "
                f"(supported: {', '.join(SELECTOR_TYPES)})"
            )

        capture_group = _parse_int(item.get('captureGroup'), f"mailSelectors[{name}].captureGroup", 0)
        selectors.append(SelectorConfig(
            name=name,
            kind=SELECTOR_TYPES[selector_type],
            pattern=str(item.get('pattern', '')),
            capture_group=capture_group,
        ))
    return tuple(selectors)


def _parse_attachments(data):
    data = _require_dict(data, 'callback.attachments')

    strategy = data.get('strategy') or DEFAULT_ATTACHMENT_STRATEGY
    if strategy not in ATTACHMENT_STRATEGIES:
        raise ConfigurationError(
            f"callback.attachments.strategy not supported: '{strategy}' "
            f"(supported: {', '.join(ATTACHMENT_STRATEGIES)})"
        )

    field_name = data.get('fieldName') or DEFAULT_ATTACHMENT_FIELD_NAME

    max_size = str(data.get('maxSize') or '')
    try:
        max_size_bytes = parse_size_string(max_size)
    except ValueError as e:
        raise ConfigurationError(f"callback.attachments.maxSize invalid '{max_size}': {e}") from e

    return AttachmentsConfig(
        strategy=strategy,
        field_name=field_name,
        max_size=max_size,
        max_size_bytes=max_size_bytes,
    )


def _parse_expected_status(items):
    if not items:
        return DEFAULT_EXPECTED_STATUS
    if not isinstance(items, list):
        raise ConfigurationError("callback.expectedStatus must be a list of status codes.")
    codes = []
    for item in items:
        code = _parse_int(item, 'callback.expectedStatus', None)
        if code < 100 or code > 599:
            raise ConfigurationError(f"callback.expectedStatus contains an invalid status code: {code}")
        codes.append(code)
    return tuple(codes)


def _parse_callback(data):
    data = _require_dict(data, 'callback')

    url = str(data.get('url') or '').strip()
    if not url:
        raise ConfigurationError("callback.url is empty")
    parsed_url = urlparse(url)
    if parsed_url.scheme not in ('http', 'https') or not parsed_url.netloc:
        raise ConfigurationError(f"callback.url must be an absolute http(s) URL: '{url}'")

    method = str(data.get('method') or '').upper()
    if method not in SUPPORTED_HTTP_METHODS:
        raise ConfigurationError(
            f"callback.method not supported: '{data.get('method')}', "
            f"supported methods: {', '.join(sorted(SUPPORTED_HTTP_METHODS))}"
        )

    timeout = str(data.get('timeout') or DEFAULT_TIMEOUT)
    retry_delay = str(data.get('retryDelay') or DEFAULT_RETRY_DELAY)
    try:
        timeout_seconds = parse_duration(timeout)
        retry_delay_seconds = parse_duration(retry_delay)
    except ValueError as e:
        raise ConfigurationError(f"callback duration invalid: {e}") from e

    retries = _parse_int(data.get('retries'), 'callback.retries', DEFAULT_RETRIES)
    if retries < 0:
        raise ConfigurationError("callback.retries must be greater than or equal to 0")

    return CallbackConfig(
        url=url,
        method=method,
        timeout=timeout,
        timeout_seconds=timeout_seconds,
        retries=retries,
        retry_delay=retry_delay,
        retry_delay_seconds=retry_delay_seconds,
        headers=_parse_key_values(data.get('headers'), HEADER_NAME_PATTERN, 'callback.headers'),
        query_params=_parse_key_values(data.get('queryParams'), NAME_PATTERN, 'callback.queryParams'),
        form=_parse_key_values(data.get('form'), NAME_PATTERN, 'callback.form'),
        body=str(data.get('body') or ''),
        expected_status=_parse_expected_status(data.get('expectedStatus')),
        attachments=_parse_attachments(data.get('attachments')),
    )


def _parse_processing(data):
    data = _require_dict(data, 'processing')
    try:
        processed_action = normalize_processed_action(data.get('processedAction'))
    except ValueError as e:
        raise ConfigurationError(f"invalid processing.processedAction: {e}") from e

    max_workers = _parse_int(data.get('maxWorkers'), 'processing.maxWorkers', None)
    if max_workers is not None and max_workers < 1:
        raise ConfigurationError("processing.maxWorkers must be at least 1")
    return ProcessingConfig(processed_action=processed_action, max_workers=max_workers)


def parse_config(data):
    """
    Validates a configuration dictionary and applies defaults.

    Args:
        data (dict): The decoded configuration file.

    Returns:
        ServiceConfig: The validated configuration with compiled selectors.

    Raises:
        ConfigurationError: If any part of the configuration is invalid.
    """
    data = _require_dict(data, 'configuration')

    log_level = str(data.get('logLevel') or DEFAULT_LOG_LEVEL).strip().lower()
    if log_level not in LOG_LEVELS:
        raise ConfigurationError(f"invalid logLevel '{data.get('logLevel')}' (supported: {', '.join(LOG_LEVELS)})")

    mail_selectors = _parse_selectors(data.get('mailSelectors'))
    return ServiceConfig(
        mail_selectors=mail_selectors,
        selector_prototypes=tuple(build_selector_prototypes(mail_selectors)),
        callback=_parse_callback(data.get('callback')),
        processing=_parse_processing(data.get('processing')),
        log_level=log_level,
    )


def load_config(config_file=CONFIG_FILE):
    """
    Loads and validates the service configuration from a JSON file.

    Args:
        config_file (str): Path to the JSON configuration file.

    Returns:
        ServiceConfig: The validated configuration.

    Raises:
        ConfigurationError: If the file is missing, is not valid JSON or fails validation.
    """
    if not os.path.exists(config_file):
        raise ConfigurationError(f"Configuration file '{config_file}' not found.")

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Error decoding JSON from configuration file '{config_file}': {e}") from e

    service_config = parse_config(data)
    logger.info(
        f"Loaded configuration from '{config_file}' with {len(service_config.mail_selectors)} selectors."
    )
    return service_config
