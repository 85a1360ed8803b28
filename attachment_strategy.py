# attachment_strategy.py

import logging
import mimetypes
import os

from errors import ConfigurationError
from outbound_request import MultipartFile
from placeholders import expand

logger = logging.getLogger(__name__)

STRATEGY_IGNORE = 'ignore'
STRATEGY_BUNDLE = 'bundle'
STRATEGY_PER_ATTACHMENT = 'perAttachment'

ATTACHMENT_STRATEGIES = (STRATEGY_IGNORE, STRATEGY_BUNDLE, STRATEGY_PER_ATTACHMENT)

DEFAULT_CONTENT_TYPE = 'application/octet-stream'


def filter_attachments_by_size(attachments, max_size_bytes):
    """
    Drops attachments that are larger than the configured limit.

    Args:
        attachments (iterable): Attachment objects.
        max_size_bytes (int): Maximum content length; 0 means no limit.

    Returns:
        list: The attachments within the limit, in their original order.
    """
    if not max_size_bytes:
        return list(attachments)

    kept = []
    for attachment in attachments:
        if attachment.size > max_size_bytes:
            logger.warning(
                f"Skipping attachment '{attachment.name}' due to size limit "
                f"({attachment.size} > {max_size_bytes} bytes)."
            )
            continue
        kept.append(attachment)
    return kept


def guess_content_type(filename):
    content_type, _ = mimetypes.guess_type(filename or '')
    return content_type or DEFAULT_CONTENT_TYPE


def attachment_template_data(index, attachment):
    """
    Returns the per-attachment values available to the field name template.

    Args:
        index (int): Position of the attachment among the forwarded attachments.
        attachment (Attachment): The attachment.

    Returns:
        dict: index, filename, basename, extension (without dot) and contentType.
    """
    filename = os.path.basename(attachment.name or '')
    basename, extension = os.path.splitext(filename)
    return {
        'index': str(index),
        'filename': filename,
        'basename': basename,
        'extension': extension.lstrip('.'),
        'contentType': guess_content_type(filename),
    }


def render_field_name(field_name_template, index, attachment, values):
    """
    Renders the multipart field name for one attachment.

    The selected values are available as placeholders, with the per-attachment
    values (see attachment_template_data) taking precedence on name clashes.
    """
    data = dict(values)
    data.update(attachment_template_data(index, attachment))
    return expand(field_name_template, data)


def build_multipart_file(field_name_template, index, attachment, values):
    """
    Turns an attachment into a MultipartFile.

    The file name is the attachment's base name; nameless attachments fall back
    to the rendered field name.
    """
    field = render_field_name(field_name_template, index, attachment, values)
    filename = os.path.basename(attachment.name or '') or field
    return MultipartFile(
        field=field,
        filename=filename,
        content=attachment.content,
        content_type=guess_content_type(filename),
    )


class IgnoreStrategy:
    """Sends a single request and never forwards attachments."""

    name = STRATEGY_IGNORE
    forwards_attachments = False

    def __init__(self, attachments_config):
        self.attachments_config = attachments_config

    def build_requests(self, base_request, message, values):
        return [base_request]


class BundleStrategy:
    """Sends a single request carrying every attachment within the size limit as a separate file part."""

    name = STRATEGY_BUNDLE
    forwards_attachments = True

    def __init__(self, attachments_config):
        self.attachments_config = attachments_config

    def build_requests(self, base_request, message, values):
        attachments = filter_attachments_by_size(message.attachments, self.attachments_config.max_size_bytes)
        files = list(base_request.files)
        for index, attachment in enumerate(attachments):
            files.append(build_multipart_file(self.attachments_config.field_name, index, attachment, values))
        return [base_request.with_files(files)]


class PerAttachmentStrategy:
    """
    Sends one request per attachment within the size limit.

    Every request carries exactly one file. If no attachment qualifies a single
    request without files is sent instead. The requests must be sent in order
    and delivery stops at the first failure.
    """

    name = STRATEGY_PER_ATTACHMENT
    forwards_attachments = True

    def __init__(self, attachments_config):
        self.attachments_config = attachments_config

    def build_requests(self, base_request, message, values):
        attachments = filter_attachments_by_size(message.attachments, self.attachments_config.max_size_bytes)
        if not attachments:
            return [base_request]

        requests = []
        for index, attachment in enumerate(attachments):
            multipart_file = build_multipart_file(self.attachments_config.field_name, index, attachment, values)
            requests.append(base_request.with_files([multipart_file]))
        return requests


_STRATEGY_CLASSES = {
    STRATEGY_IGNORE: IgnoreStrategy,
    STRATEGY_BUNDLE: BundleStrategy,
    STRATEGY_PER_ATTACHMENT: PerAttachmentStrategy,
}


def new_attachment_strategy(attachments_config):
    """
    Creates the delivery strategy named in the attachments configuration.

    Args:
        attachments_config (AttachmentsConfig): The callback's attachment settings.

    Returns:
        IgnoreStrategy | BundleStrategy | PerAttachmentStrategy: The strategy.

    Raises:
        ConfigurationError: If the strategy name is unknown.
    """
    strategy_class = _STRATEGY_CLASSES.get(attachments_config.strategy)
    if strategy_class is None:
        raise ConfigurationError(
            f"Unsupported attachment strategy '{attachments_config.strategy}' "
            f"(supported: {', '.join(ATTACHMENT_STRATEGIES)})."
        )
    return strategy_class(attachments_config)
