# run_webhook_service.py

import logging
import signal
import sys
import threading

from config import CONFIG_FILE
from config_loader import load_config
from errors import ConfigurationError
from gmail_client import GmailClient
from webhook_service import WebhookService

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'error': logging.ERROR,
}


def setup_logging(log_level='info'):
    """
    Configures console logging on stderr.

    Args:
        log_level (str): 'debug', 'info', 'warn' or 'error'.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(
        '%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(_LOG_LEVELS.get(log_level, logging.INFO))

    # The Google client logs every discovery lookup at INFO.
    logging.getLogger('googleapiclient').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)


def run_webhook_service(config_file=CONFIG_FILE):
    """
    Loads the configuration, reads unread emails from Gmail and forwards the
    in-scope ones to the configured callback.

    Args:
        config_file (str): Path to the JSON configuration file.

    Returns:
        RunSummary: The run's counters, or None if the service could not start.
    """
    print("Starting webhook service...")

    # 1. Load and validate the configuration before touching any email
    try:
        service_config = load_config(config_file)
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}")
        return None
    setup_logging(service_config.log_level)

    # 2. Initialize Gmail Client (to read and mark emails)
    try:
        gmail_client = GmailClient()
    except Exception as e:
        print(f"Failed to initialize GmailClient: {e}")
        print("Please ensure your token is set up (run generate_token.py) and you have internet access.")
        return None

    # 3. Process emails; Ctrl+C abandons the remaining callbacks and leaves those emails unread
    cancel_event = threading.Event()

    def _cancel(signum, frame):
        logger.warning("Cancellation requested. Remaining emails stay unread.")
        cancel_event.set()

    previous_handler = signal.signal(signal.SIGINT, _cancel)
    try:
        with WebhookService(service_config, gmail_client) as service:
            summary = service.run(cancel_event=cancel_event)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    print(f"\nWebhook service finished: {summary.succeeded} delivered, {summary.exhausted} left unread.")
    return summary


if __name__ == "__main__":
    result = run_webhook_service(*sys.argv[1:2])
    sys.exit(0 if result is not None else 1)
