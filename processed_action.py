# processed_action.py

import logging

from errors import ProcessedActionFailure

logger = logging.getLogger(__name__)

MARK_READ = 'markRead'
DELETE = 'delete'

PROCESSED_ACTIONS = (MARK_READ, DELETE)

# Accepted spellings, including the legacy "mark_read".
_ACTION_ALIASES = {
    '': MARK_READ,
    'markread': MARK_READ,
    'mark_read': MARK_READ,
    'delete': DELETE,
}


def normalize_processed_action(name):
    """
    Maps a configured processed action name onto its canonical form.

    Args:
        name (str): e.g. 'markRead', 'mark_read', 'delete'. Blank means 'markRead'.

    Returns:
        str: 'markRead' or 'delete'.

    Raises:
        ValueError: If the name is not a supported action.
    """
    action_type = _ACTION_ALIASES.get((name or '').strip().lower())
    if action_type is None:
        raise ValueError(f"unsupported processed action '{name}' (supported: {', '.join(PROCESSED_ACTIONS)})")
    return action_type


class ProcessedAction:
    """
    The action applied to an email once its callback was delivered.

    'markRead' removes the UNREAD label, 'delete' removes the email from the mailbox.
    """

    def __init__(self, action_type=MARK_READ):
        """
        Initializes a ProcessedAction object.

        Args:
            action_type (str): Any name accepted by normalize_processed_action.

        Raises:
            ValueError: If the action type is unknown.
        """
        self.action_type = normalize_processed_action(action_type)

    def execute(self, mail_client, message):
        """
        Executes the action on an email using the provided mail client.

        Args:
            mail_client (GmailClient): Client offering mark_as_read and delete_message.
            message (Message): The email to mark as processed.

        Raises:
            ProcessedActionFailure: If the mail client reports a failure.
        """
        if self.action_type == MARK_READ:
            succeeded = mail_client.mark_as_read(message.id)
        else:
            succeeded = mail_client.delete_message(message.id)

        if not succeeded:
            raise ProcessedActionFailure(f"Action '{self.action_type}' failed for email {message.id}.")
        logger.debug(f"Action '{self.action_type}' applied to email {message.id}.")
