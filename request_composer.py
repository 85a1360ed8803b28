# request_composer.py

import logging
from dataclasses import replace

import httpx

from attachment_strategy import new_attachment_strategy
from errors import CompositionError
from outbound_request import OutboundRequest
from placeholders import expand

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ('http', 'https')


def _base_request(values, callback):
    try:
        url = httpx.URL(callback.url)
    except (httpx.InvalidURL, TypeError) as e:
        raise CompositionError(f"Invalid callback URL '{callback.url}': {e}") from e
    if url.scheme not in ALLOWED_SCHEMES or not url.host:
        raise CompositionError(f"Callback URL must be an absolute http(s) URL: '{callback.url}'")

    method = (callback.method or '').upper()
    if not method or not method.isalpha():
        raise CompositionError(f"Invalid callback method '{callback.method}'")

    query = tuple((key, expand(value, values)) for key, value in callback.query_params)
    headers = tuple((key, expand(value, values)) for key, value in callback.headers)
    return OutboundRequest(method=method, url=callback.url, headers=headers, query=query)


def compose(message, values, callback, strategy=None):
    """
    Builds the callback requests for one email.

    Query parameter and header values are expanded first. A multipart body is
    built when form fields are configured, or when the attachment strategy
    forwards attachments and the email has some; the strategy then decides how
    many requests are sent. Otherwise the expanded raw body is attached without
    an implicit Content-Type. With neither, the request has no body.

    Args:
        message (Message): The in-scope email.
        values (dict): Selector name to selected value.
        callback (CallbackConfig): The callback request template.
        strategy: Attachment delivery strategy; created from callback.attachments when omitted.

    Returns:
        list: OutboundRequest objects, to be sent in order.

    Raises:
        CompositionError: If the request cannot be constructed.
    """
    if strategy is None:
        strategy = new_attachment_strategy(callback.attachments)

    request = _base_request(values, callback)

    has_attachments = strategy.forwards_attachments and len(message.attachments) > 0
    if callback.form or has_attachments:
        form = tuple((key, expand(value, values)) for key, value in callback.form)
        multipart_request = replace(request, multipart=True, form=form)
        requests = strategy.build_requests(multipart_request, message, values)
        logger.debug(f"Composed {len(requests)} multipart request(s) for email {message.id} using strategy '{strategy.name}'.")
        return requests

    if callback.body:
        body = expand(callback.body, values)
        return [replace(request, content=body.encode('utf-8'))]

    return [request]
