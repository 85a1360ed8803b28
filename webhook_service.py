# webhook_service.py

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from enum import Enum

import httpx
from tenacity import (Retrying, retry_if_exception_type, retry_if_not_exception_type,
                      stop_after_attempt, wait_fixed)

from attachment_strategy import new_attachment_strategy
from errors import CompositionError, DispatchCancelled, ProcessedActionFailure, SendFailure
from mail_selectors import select_in_scope
from processed_action import ProcessedAction
from request_composer import compose

logger = logging.getLogger(__name__)


class MessageState(Enum):
    """
    Terminal states of an in-scope email within a run.

    Every email handed to process_message has passed the selectors (selected) and
    is being sent until it ends in one of these states.
    """
    SUCCEEDED = 'succeeded'
    EXHAUSTED = 'exhausted'


class RunSummary:
    """
    Tally of one run, shared by all dispatch tasks.

    All updates go through record_* methods, which hold a lock.
    """

    def __init__(self):
        self.fetched = 0
        self.in_scope = 0
        self.succeeded = 0
        self.exhausted = 0
        self.failed_attempts = 0
        self.processed_action_failures = 0
        self._lock = threading.Lock()

    def record_failed_attempt(self):
        with self._lock:
            self.failed_attempts += 1

    def record_outcome(self, state, processed_action_failed=False):
        with self._lock:
            if state == MessageState.SUCCEEDED:
                self.succeeded += 1
            elif state == MessageState.EXHAUSTED:
                self.exhausted += 1
            if processed_action_failed:
                self.processed_action_failures += 1

    def __repr__(self):
        return (f"RunSummary(fetched={self.fetched}, in_scope={self.in_scope}, succeeded={self.succeeded}, "
                f"exhausted={self.exhausted}, failed_attempts={self.failed_attempts}, "
                f"processed_action_failures={self.processed_action_failures})")


class WebhookService:
    """
    Forwards in-scope unread emails to the configured HTTP callback.

    One run lists the unread emails, keeps the ones every selector applies to,
    and dispatches each of them on its own worker thread. An email whose
    callback requests all succeed is marked as processed; an email whose
    attempts are exhausted is left unread so the next run picks it up again.
    """

    def __init__(self, service_config, mail_client, http_client=None):
        """
        Initializes the WebhookService.

        Args:
            service_config (ServiceConfig): The validated configuration.
            mail_client (GmailClient): Client offering list_unread, mark_as_read and delete_message.
            http_client (httpx.Client, optional): Client used to send callbacks. A client with
                the configured timeout is created (and owned) when omitted.
        """
        self.config = service_config
        self.callback = service_config.callback
        self.mail_client = mail_client
        self.strategy = new_attachment_strategy(self.callback.attachments)
        self.processed_action = ProcessedAction(service_config.processing.processed_action)
        self._owns_http_client = http_client is None
        self.http_client = http_client if http_client is not None else httpx.Client(
            timeout=self.callback.timeout_seconds
        )

    def close(self):
        if self._owns_http_client:
            self.http_client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def run(self, cancel_event=None):
        """
        Processes all unread emails once.

        Args:
            cancel_event (threading.Event, optional): When set, pending and remaining
                callback requests are abandoned and the affected emails stay unread.

        Returns:
            RunSummary: Counters describing the run.
        """
        summary = RunSummary()
        logger.info("Start reading emails.")
        messages = self.mail_client.list_unread()
        summary.fetched = len(messages)

        selected = select_in_scope(messages, self.config.selector_prototypes)
        summary.in_scope = len(selected)
        logger.info(f"Number of unread emails that are in scope is: {len(selected)}")
        if not selected:
            return summary

        max_workers = self.config.processing.max_workers or len(selected)
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='webhook') as pool:
            futures = [
                pool.submit(self.process_message, message, values, cancel_event, summary)
                for message, values in selected
            ]
            for future in as_completed(futures):
                future.result()

        logger.info(f"Run finished: {summary}")
        return summary

    def process_message(self, message, values, cancel_event=None, summary=None):
        """
        Delivers one in-scope email and applies the processed action on success.

        Up to retries + 1 attempts are made. Every attempt composes its requests
        anew and sends them strictly in order, stopping at the first failure.

        Args:
            message (Message): The email.
            values (dict): The values selected from the email.
            cancel_event (threading.Event, optional): Cancellation signal of the run.
            summary (RunSummary, optional): Tally to update.

        Returns:
            MessageState: SUCCEEDED or EXHAUSTED.
        """
        if summary is None:
            summary = RunSummary()

        try:
            self._deliver_with_retries(message, values, cancel_event, summary)
        except DispatchCancelled as e:
            logger.warning(f"Delivery of email {message.id} cancelled, leaving it unread: {e}")
            summary.record_outcome(MessageState.EXHAUSTED)
            return MessageState.EXHAUSTED
        except (SendFailure, CompositionError) as e:
            logger.error(f"Giving up on email {message.id}, leaving it unread: {e}")
            summary.record_outcome(MessageState.EXHAUSTED)
            return MessageState.EXHAUSTED
        except Exception as e:
            logger.exception(f"Unexpected error while delivering email {message.id}: {e}")
            summary.record_outcome(MessageState.EXHAUSTED)
            return MessageState.EXHAUSTED

        processed_action_failed = False
        try:
            self.processed_action.execute(self.mail_client, message)
        except ProcessedActionFailure as e:
            # The callback already succeeded; it is not sent again.
            processed_action_failed = True
            logger.error(f"Could not mark email {message.id} as processed: {e}")
        except Exception as e:
            processed_action_failed = True
            logger.exception(f"Unexpected error while marking email {message.id} as processed: {e}")

        summary.record_outcome(MessageState.SUCCEEDED, processed_action_failed=processed_action_failed)
        logger.info(f"Successfully processed email {message.id} with subject: '{message.subject}'")
        logger.debug(f"Processed email {message.id}: {message.summary()}")
        return MessageState.SUCCEEDED

    def _deliver_with_retries(self, message, values, cancel_event, summary):
        def _log_retry(retry_state):
            logger.warning(
                f"Attempt {retry_state.attempt_number} for email {message.id} failed: "
                f"{retry_state.outcome.exception()}"
            )

        # Waits between attempts end early when the run is cancelled.
        cancelled = cancel_event if cancel_event is not None else threading.Event()

        def _sleep(seconds):
            if cancelled.wait(seconds):
                raise DispatchCancelled(f"run cancelled while waiting to retry email {message.id}")

        retrying = Retrying(
            stop=stop_after_attempt(self.callback.retries + 1),
            wait=wait_fixed(self.callback.retry_delay_seconds),
            sleep=_sleep,
            retry=retry_if_exception_type(SendFailure) & retry_if_not_exception_type(DispatchCancelled),
            before_sleep=_log_retry,
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                logger.debug(f"Sending email {message.id} (attempt {attempt.retry_state.attempt_number}).")
                try:
                    self._deliver(message, values, cancel_event)
                except DispatchCancelled:
                    raise
                except SendFailure:
                    summary.record_failed_attempt()
                    raise

    def _deliver(self, message, values, cancel_event):
        requests = compose(message, values, self.callback, strategy=self.strategy)
        for outbound in requests:
            if cancel_event is not None and cancel_event.is_set():
                raise DispatchCancelled(f"run cancelled before sending {outbound.method} {outbound.url}")
            self.send_request(outbound)

    def send_request(self, outbound):
        """
        Sends one callback request.

        Args:
            outbound (OutboundRequest): The request description.

        Returns:
            httpx.Response: The response.

        Raises:
            SendFailure: On transport errors and on status codes outside the expected set.
        """
        request = outbound.build(self.http_client, timeout=self.callback.timeout_seconds)
        try:
            response = self.http_client.send(request)
        except httpx.HTTPError as e:
            raise SendFailure(f"could not send request: {request.method} - {request.url}: {e}") from e

        if response.status_code not in self.callback.expected_status:
            raise SendFailure(
                f"status code: {response.status_code} for request: {request.method} - {request.url}",
                status_code=response.status_code,
            )
        logger.info(f"status code: {response.status_code} for request: {request.method} - {request.url}")
        return response
