# errors.py


class WebhookServiceError(Exception):
    """Base class for all errors raised by the webhook service."""


class ConfigurationError(WebhookServiceError):
    """
    Raised when the service configuration is invalid.

    Configuration errors are fatal: they abort the run before any email is touched.
    """


class SelectorNotMatched(WebhookServiceError):
    """
    Raised when a selector does not apply to an email.

    This is an expected signal, not an application error. The email is simply
    left out of the current run.
    """

    def __init__(self, selector_name):
        super().__init__(f"selector '{selector_name}' did not apply")
        self.selector_name = selector_name


class CompositionError(WebhookServiceError):
    """Raised when a callback request cannot be constructed (e.g. an unparseable URL)."""


class SendFailure(WebhookServiceError):
    """Raised when a callback request fails in transport or returns an unexpected status code."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class DispatchCancelled(SendFailure):
    """Raised when the run was cancelled before or between callback requests."""


class ProcessedActionFailure(WebhookServiceError):
    """Raised when the callback succeeded but the email could not be marked as processed."""
