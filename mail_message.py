# mail_message.py

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Attachment:
    """
    A file attached to an email.

    Attributes:
        name (str): The attachment's file name as reported by the mail provider.
        content (bytes): The raw, decoded attachment content.
    """
    name: str
    content: bytes = b''

    @property
    def size(self):
        """int: Length of the attachment content in bytes."""
        return len(self.content)


@dataclass(frozen=True)
class Message:
    """
    Represents an unread email message with the attributes the selectors work on.

    Instances are immutable once fetched, so they can be handed to concurrently
    running dispatch tasks without copying.

    Attributes:
        id (str): Unique ID of the email.
        sender (str): Sender's email address (address only, without display name).
        recipients (tuple): Ordered recipient addresses (Delivered-To, then To and Cc).
        subject (str): Subject of the email.
        body (str): Plain text content of the email body.
        attachments (tuple): Ordered Attachment objects.
    """
    id: str
    sender: str = ''
    recipients: tuple = field(default_factory=tuple)
    subject: str = ''
    body: str = ''
    attachments: tuple = field(default_factory=tuple)

    def __post_init__(self):
        # Accept lists from callers but store tuples so the message stays hashable and read-only.
        object.__setattr__(self, 'recipients', tuple(self.recipients))
        object.__setattr__(self, 'attachments', tuple(self.attachments))

    def summary(self, prefix_length=100):
        """
        Returns a short, log friendly description of the email.

        Args:
            prefix_length (int): Maximum number of body characters to include.

        Returns:
            str: The subject and a (possibly truncated) body prefix.
        """
        body = self.body or ''
        if len(body) > prefix_length:
            body = f"{body[:prefix_length]}..."
        return f"subject: '{self.subject}' and body: '{body}'"
