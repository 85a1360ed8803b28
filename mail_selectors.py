# mail_selectors.py

import base64
import logging
import re
from dataclasses import dataclass

from errors import ConfigurationError, SelectorNotMatched

logger = logging.getLogger(__name__)

SUBJECT = 'subject'
BODY = 'body'
SENDER = 'sender'
RECIPIENT = 'recipient'
ATTACHMENT_NAME = 'attachmentName'

SELECTOR_KINDS = frozenset([SUBJECT, BODY, SENDER, RECIPIENT, ATTACHMENT_NAME])

# Configuration "type" names mapped to selector kinds.
SELECTOR_TYPES = {
    'subjectRegex': SUBJECT,
    'bodyRegex': BODY,
    'senderRegex': SENDER,
    'recipientRegex': RECIPIENT,
    'attachmentNameRegex': ATTACHMENT_NAME,
}


@dataclass(frozen=True)
class SelectorConfig:
    """
    A single selector as written in the configuration file.

    Attributes:
        name (str): Unique selector name, also used as the ${name} placeholder.
        kind (str): One of SELECTOR_KINDS.
        pattern (str): Regular expression source.
        capture_group (int): 0 for the whole match, k > 0 for the k-th group.
    """
    name: str
    kind: str
    pattern: str
    capture_group: int = 0


@dataclass(frozen=True)
class SelectorPrototype:
    """
    A compiled, immutable selector.

    Prototypes hold no per-evaluation state, so one prototype can be evaluated
    against many emails from many threads at once.
    """
    name: str
    kind: str
    regex: re.Pattern
    capture_group: int = 0

    def evaluate(self, message):
        """Shortcut for evaluate_selector(self, message)."""
        return evaluate_selector(self, message)


def build_selector_prototype(selector_config):
    """
    Compiles a SelectorConfig into a SelectorPrototype.

    Args:
        selector_config (SelectorConfig): The selector definition.

    Returns:
        SelectorPrototype: The compiled selector.

    Raises:
        ConfigurationError: If the kind is unknown, the pattern does not compile
            or the capture group exceeds the groups available in the pattern.
    """
    name = selector_config.name
    if selector_config.kind not in SELECTOR_KINDS:
        raise ConfigurationError(
            f"Unsupported selector kind '{selector_config.kind}' for selector '{name}' "
            f"(supported: {', '.join(sorted(SELECTOR_KINDS))})."
        )
    try:
        regex = re.compile(selector_config.pattern)
    except re.error as e:
        raise ConfigurationError(
            f"Failed to compile pattern '{selector_config.pattern}' for selector '{name}': {e}"
        ) from e

    capture_group = selector_config.capture_group
    if capture_group < 0:
        raise ConfigurationError(f"captureGroup of selector '{name}' must be >= 0 (got {capture_group}).")
    if capture_group > regex.groups:
        raise ConfigurationError(
            f"captureGroup ({capture_group}) of selector '{name}' exceeds the number of groups "
            f"({regex.groups}) in pattern '{selector_config.pattern}'."
        )

    return SelectorPrototype(name=name, kind=selector_config.kind, regex=regex, capture_group=capture_group)


def build_selector_prototypes(selector_configs):
    """
    Compiles all configured selectors, preserving their order.

    Args:
        selector_configs (list): SelectorConfig objects.

    Returns:
        list: SelectorPrototype objects in configuration order.

    Raises:
        ConfigurationError: If any selector is invalid or a name is used twice.
    """
    prototypes = []
    seen_names = set()
    for selector_config in selector_configs:
        if selector_config.name in seen_names:
            raise ConfigurationError(f"Duplicate selector name '{selector_config.name}'.")
        seen_names.add(selector_config.name)
        prototypes.append(build_selector_prototype(selector_config))
    return prototypes


def _field_values(message, kind):
    """
    Returns the strings of an email a regex selector of the given kind is applied to.
    """
    if kind == SUBJECT:
        return [message.subject]
    elif kind == BODY:
        return [message.body]
    elif kind == SENDER:
        return [message.sender]
    elif kind == RECIPIENT:
        return list(message.recipients)
    return []


def _select_from_values(prototype, values):
    for value in values:
        if not value:
            continue
        match = prototype.regex.search(value)
        if match is None:
            continue
        selected = match.group(prototype.capture_group)
        # A group that did not take part in the match counts as no match for this value.
        if selected is not None:
            return selected
    return None


def _select_attachment(prototype, message):
    for attachment in message.attachments:
        if prototype.regex.search(attachment.name or ''):
            return base64.b64encode(attachment.content).decode('ascii')
    return None


def evaluate_selector(prototype, message):
    """
    Applies one selector to an email.

    For subject, body and sender selectors the pattern is searched in that field.
    Recipient selectors try each recipient in order and use the first one that
    yields a value. Attachment name selectors return the base64 encoded content
    of the first attachment whose name matches, not the name itself.

    Args:
        prototype (SelectorPrototype): The compiled selector.
        message (Message): The email to evaluate.

    Returns:
        str: The selected value, or None if the selector does not apply.
    """
    if prototype.kind == ATTACHMENT_NAME:
        return _select_attachment(prototype, message)
    return _select_from_values(prototype, _field_values(message, prototype.kind))


def evaluate_all(message, prototypes):
    """
    Evaluates every selector against an email, all of which must match.

    Args:
        message (Message): The email to evaluate.
        prototypes (list): SelectorPrototype objects, evaluated in order.

    Returns:
        dict: Selector name to selected value for every selector.

    Raises:
        SelectorNotMatched: For the first selector that does not apply. No
            partial result is returned.
    """
    values = {}
    for prototype in prototypes:
        selected = evaluate_selector(prototype, message)
        if selected is None:
            raise SelectorNotMatched(prototype.name)
        values[prototype.name] = selected
    return values


def select_in_scope(messages, prototypes):
    """
    Filters emails down to the ones every selector applies to.

    An email is in scope only if all selectors match it. With no selectors
    configured nothing is in scope.

    Args:
        messages (list): Message objects.
        prototypes (list): SelectorPrototype objects.

    Returns:
        list: (Message, dict) tuples of in-scope emails and their selected values,
            in the order the emails were given.
    """
    if not prototypes:
        logger.info("No selectors configured. No email is in scope.")
        return []

    selected = []
    for message in messages:
        try:
            values = evaluate_all(message, prototypes)
        except SelectorNotMatched as e:
            logger.debug(f"Email {message.id} is out of scope: {e}")
            continue
        selected.append((message, values))
    return selected
