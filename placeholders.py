# placeholders.py

import logging
import re

logger = logging.getLogger(__name__)

# A placeholder is ${identifier}; an unterminated "${" never matches and stays literal text.
PLACEHOLDER_PATTERN = re.compile(r'\$\{([0-9A-Za-z]+)\}')


def expand(template, values):
    """
    Replaces every ${name} token in a template with the matching value.

    Substituted values are inserted verbatim and are not expanded again.
    Unknown names are replaced with an empty string and logged as a warning,
    so expansion never fails.

    Args:
        template (str): The text containing ${name} placeholders.
        values (dict): Flat mapping of placeholder names to string values.

    Returns:
        str: The expanded text.
    """
    if not template:
        return template or ''

    def _substitute(match):
        key = match.group(1)
        if key in values:
            return str(values[key])
        logger.warning(f"Placeholder '{key}' has no value. Substituting empty string.")
        return ''

    return PLACEHOLDER_PATTERN.sub(_substitute, template)
