# gmail_client.py

import os
import base64
import logging
import threading
from email.utils import getaddresses, parseaddr
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from bs4 import BeautifulSoup

# Import configuration constants
from config import TOKEN_FILE, SCOPES, MAX_EMAIL_FETCH_RESULTS, UNREAD_QUERY
from mail_message import Attachment, Message

logger = logging.getLogger(__name__)


class GmailClient:
    """
    Manages authentication and interactions with the Gmail API.

    This class loads the OAuth 2.0 token created by generate_token.py, lists
    unread emails with their recipients and attachments, and marks emails as
    processed by marking them as read or deleting them.

    The underlying API client is not thread-safe, so every API call is made
    while holding a lock. This lets concurrently running dispatch tasks share
    one GmailClient.
    """

    def __init__(self, token_file=TOKEN_FILE):
        """
        Initializes the GmailClient, authenticates with Gmail API,
        and builds the service object.

        Args:
            token_file (str): Path to the stored OAuth token.
        """
        self.token_file = token_file
        self.creds = None
        self._lock = threading.Lock()
        self.service = self._authenticate()

    def _authenticate(self):
        """
        Loads the stored OAuth 2.0 token, refreshing it when it has expired.

        Refreshed tokens are written back to the token file.

        Returns:
            googleapiclient.discovery.Resource: The authenticated Gmail API service object.
        Raises:
            IOError: If the token file is missing, or the token is invalid and cannot be refreshed.
        """
        logger.info("Authenticating with Gmail API...")

        if not os.path.exists(self.token_file):
            raise IOError(
                f"'{self.token_file}' not found. "
                "Please run generate_token.py to authorize access to your mailbox."
            )
        self.creds = Credentials.from_authorized_user_file(self.token_file, SCOPES)

        if not self.creds.valid:
            if self.creds.expired and self.creds.refresh_token:
                self.creds.refresh(Request())
                # Save the refreshed credentials for the next run
                with open(self.token_file, 'w') as token:
                    token.write(self.creds.to_json())
            else:
                raise IOError(
                    f"The OAuth token in '{self.token_file}' is invalid or expired and has no refresh token. "
                    "Please run generate_token.py again."
                )

        try:
            service = build('gmail', 'v1', credentials=self.creds)
            logger.info("Gmail API authentication successful.")
            return service
        except HttpError as error:
            logger.error(f"An HTTP error occurred during authentication: {error}")
            raise

    def list_unread(self, query=UNREAD_QUERY, page_size=MAX_EMAIL_FETCH_RESULTS):
        """
        Fetches all unread emails with their full content.

        Args:
            query (str): Gmail search query string.
            page_size (int): Number of message IDs requested per page.

        Returns:
            list: Message objects. Emails that cannot be retrieved are skipped;
                  an empty list is returned if listing fails.
        """
        message_ids = self.get_message_ids(query=query, page_size=page_size)
        messages = []
        for message_id in message_ids:
            message = self.get_message(message_id)
            if message is not None:
                messages.append(message)
        logger.info(f"Fetched {len(messages)} unread emails.")
        return messages

    def get_message_ids(self, query=UNREAD_QUERY, page_size=MAX_EMAIL_FETCH_RESULTS):
        """
        Lists the IDs of all messages matching a query, following result pages.

        Args:
            query (str): Gmail search query string (e.g., 'is:unread').
            page_size (int): Number of message IDs requested per page.

        Returns:
            list: Message IDs. Returns an empty list if an error occurs.
        """
        message_ids = []
        page_token = None
        try:
            while True:
                kwargs = {'userId': 'me', 'q': query, 'maxResults': page_size}
                if page_token:
                    kwargs['pageToken'] = page_token
                with self._lock:
                    results = self.service.users().messages().list(**kwargs).execute()
                message_ids.extend(message['id'] for message in results.get('messages', []))
                page_token = results.get('nextPageToken')
                if not page_token:
                    break
        except HttpError as error:
            if error.resp.status in (401, 403):
                logger.error(
                    f"Gmail API returned {error.resp.status} unauthorized/forbidden. The OAuth token at "
                    f"'{self.token_file}' may be invalid, expired, or revoked. Re-generate it with generate_token.py."
                )
            else:
                logger.error(f"An HTTP error occurred while fetching emails: {error}")
            return []

        if not message_ids:
            logger.info('No messages found.')
        return message_ids

    def get_message(self, message_id):
        """
        Retrieves and parses a specific email message.

        Args:
            message_id (str): The ID of the email message to retrieve.

        Returns:
            Message: The parsed email, or None if it cannot be retrieved.
        """
        try:
            with self._lock:
                message = self.service.users().messages().get(userId='me', id=message_id, format='full').execute()
            payload = message.get('payload', {})
            headers = payload.get('headers', [])
            return Message(
                id=message['id'],
                sender=self._extract_sender(headers),
                recipients=self._extract_recipients(headers),
                subject=self._header_value(headers, 'Subject'),
                body=self._get_message_body(payload),
                attachments=self._get_attachments(message_id, payload.get('parts', [])),
            )
        except HttpError as error:
            logger.error(f'An HTTP error occurred while getting email details for {message_id}: {error}')
            return None

    @staticmethod
    def _header_value(headers, name):
        for header in headers:
            if header['name'] == name:
                return header['value']
        return ''

    @classmethod
    def _extract_sender(cls, headers):
        """Returns the bare address of the From header, or the raw header if it cannot be parsed."""
        value = cls._header_value(headers, 'From')
        address = parseaddr(value)[1]
        return address or value

    @staticmethod
    def _extract_recipients(headers):
        """
        Builds the ordered, de-duplicated recipient list of an email.

        Delivered-To headers (the receiving mailbox, possibly several) come first,
        followed by the addresses in To and Cc. Bcc is not visible and not considered.

        Args:
            headers (list): The 'headers' list from a Gmail message payload.

        Returns:
            list: Recipient addresses.
        """
        recipients = []
        seen = set()

        def _add(address):
            address = address.strip()
            if address and address not in seen:
                seen.add(address)
                recipients.append(address)

        for header in headers:
            if header['name'] == 'Delivered-To':
                _add(parseaddr(header['value'])[1] or header['value'])

        for header in headers:
            if header['name'] in ('To', 'Cc'):
                for _, address in getaddresses([header['value']]):
                    _add(address)
        return recipients

    def _get_message_body(self, payload):
        """
        Extracts the plain text message body from the email payload.

        Handles various MIME types (text/plain, text/html, multipart).
        Prioritizes text/plain, then converts HTML to text if only HTML is available.

        Args:
            payload (dict): The 'payload' dictionary from a Gmail message.

        Returns:
            str: The plain text content of the email body, or an empty string if not found.
        """
        parts = payload.get('parts')
        if parts:
            # Look for text/plain part first
            for part in parts:
                mime_type = part.get('mimeType')
                if mime_type == 'text/plain' and not part.get('filename'):
                    data = part.get('body', {}).get('data')
                    if data:
                        return base64.urlsafe_b64decode(data).decode('utf-8', errors='replace')
                elif mime_type and mime_type.startswith('multipart/'):
                    # Recursively search nested multipart containers
                    text_body = self._get_message_body(part)
                    if text_body:
                        return text_body

            # If no text/plain, try to extract from text/html
            for part in parts:
                mime_type = part.get('mimeType')
                if mime_type == 'text/html' and not part.get('filename'):
                    data = part.get('body', {}).get('data')
                    if data:
                        html_content = base64.urlsafe_b64decode(data).decode('utf-8', errors='replace')
                        soup = BeautifulSoup(html_content, 'html.parser')
                        return soup.get_text()  # Convert HTML to plain text
            return ""

        # Fallback for messages with no parts (e.g., simple text emails)
        body = payload.get('body')
        if body and body.get('data'):
            content = base64.urlsafe_b64decode(body['data']).decode('utf-8', errors='replace')
            if payload.get('mimeType') == 'text/html':
                return BeautifulSoup(content, 'html.parser').get_text()
            return content

        return ""

    def _get_attachments(self, message_id, parts):
        """
        Walks the message parts and collects every attachment with its content.

        Small attachments are inlined in the payload; larger ones are fetched by
        their attachment ID. Attachments that cannot be retrieved are skipped.

        Args:
            message_id (str): The ID of the email the parts belong to.
            parts (list): The 'parts' list of a Gmail message payload.

        Returns:
            list: Attachment objects in the order they appear in the email.
        """
        attachments = []
        for part in parts:
            filename = part.get('filename')
            body = part.get('body', {})
            if filename:
                data = body.get('data')
                if not data and body.get('attachmentId'):
                    data = self._fetch_attachment_data(message_id, filename, body['attachmentId'])
                if data is not None:
                    attachments.append(Attachment(name=filename, content=base64.urlsafe_b64decode(data)))
            # Recurse into nested parts
            if part.get('parts'):
                attachments.extend(self._get_attachments(message_id, part['parts']))
        return attachments

    def _fetch_attachment_data(self, message_id, filename, attachment_id):
        try:
            with self._lock:
                attachment = self.service.users().messages().attachments().get(
                    userId='me', messageId=message_id, id=attachment_id
                ).execute()
            return attachment.get('data', '')
        except HttpError as error:
            logger.error(f"An HTTP error occurred while retrieving attachment '{filename}' of email {message_id}: {error}")
            return None

    def mark_as_read(self, message_id):
        """
        Marks an email message as read.

        Args:
            message_id (str): The ID of the email message to mark as read.

        Returns:
            bool: True if successful, False otherwise.
        """
        logger.info(f"Marking email {message_id} as read...")
        try:
            with self._lock:
                self.service.users().messages().modify(
                    userId='me',
                    id=message_id,
                    body={'removeLabelIds': ['UNREAD']}
                ).execute()
            logger.info(f"Email {message_id} marked as read successfully.")
            return True
        except HttpError as error:
            logger.error(f"An HTTP error occurred while marking email {message_id} as read: {error}")
            return False
        except Exception as e:
            logger.error(f"An unexpected error occurred while marking email {message_id} as read: {e}")
            return False

    def delete_message(self, message_id):
        """
        Moves an email message to the trash, where Gmail deletes it for good after 30 days.

        Args:
            message_id (str): The ID of the email message to delete.

        Returns:
            bool: True if successful, False otherwise.
        """
        logger.info(f"Deleting email {message_id}...")
        try:
            with self._lock:
                self.service.users().messages().trash(userId='me', id=message_id).execute()
            logger.info(f"Email {message_id} deleted successfully.")
            return True
        except HttpError as error:
            logger.error(f"An HTTP error occurred while deleting email {message_id}: {error}")
            return False
        except Exception as e:
            logger.error(f"An unexpected error occurred while deleting email {message_id}: {e}")
            return False
