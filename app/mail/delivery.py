"""Delivery engine: bounded-retry sends and failure-isolated bulk sends."""
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Iterable, List, Optional, TypeVar

from app.core.logging_config import get_logger
from app.core.constants import EMAIL_MAX_ATTEMPTS, EMAIL_RETRY_BASE_DELAY_SECONDS
from app.mail.transport import EmailMessage, EmailTransport, TransportError

logger = get_logger(__name__)

R = TypeVar("R")


@dataclass(frozen=True)
class Recipient:
    email: str
    name: str = ""

    def __str__(self) -> str:
        return self.email


@dataclass
class SendResult:
    external_id: str
    attempts: int


@dataclass
class DeliveryOutcome(Generic[R]):
    """What happened for one recipient of a bulk send."""

    recipient: R
    message: Optional[EmailMessage] = None
    external_id: Optional[str] = None
    attempts: int = 0
    error: Optional[str] = None
    context: Any = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BulkSendResult(Generic[R]):
    sent: List[DeliveryOutcome[R]] = field(default_factory=list)
    failed: List[DeliveryOutcome[R]] = field(default_factory=list)

    @property
    def outcomes(self) -> List[DeliveryOutcome[R]]:
        return self.sent + self.failed


@dataclass
class PreparedMessage:
    """A rendered message plus anything the recorder needs afterwards."""

    message: EmailMessage
    context: Any = None


class DeliveryEngine:
    """
    Submit rendered messages through an ``EmailTransport``.

    The engine holds no shared mutable state, so one instance can serve
    concurrent requests; a retry wait only blocks the send that is
    retrying. ``sleep`` is injectable so tests never wait on the clock.
    """

    def __init__(
        self,
        transport: EmailTransport,
        max_attempts: int = EMAIL_MAX_ATTEMPTS,
        base_delay: float = EMAIL_RETRY_BASE_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.transport = transport
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.sleep = sleep

    def send(self, message: EmailMessage) -> SendResult:
        """
        Send one message, retrying retryable transport errors.

        After failed attempt N the engine waits N * base_delay before the
        next attempt. When attempts are exhausted (or the error is not
        retryable) the last TransportError is raised to the caller.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                external_id = self.transport.send(message)
            except TransportError as e:
                if not e.retryable or attempt >= self.max_attempts:
                    logger.warning(
                        "email_send_gave_up",
                        recipients=message.recipients,
                        attempts=attempt,
                        retryable=e.retryable,
                        error=str(e),
                    )
                    raise
                delay = attempt * self.base_delay
                logger.info(
                    "email_send_retrying",
                    recipients=message.recipients,
                    attempt=attempt,
                    delay_seconds=delay,
                    error=str(e),
                )
                self.sleep(delay)
                continue
            return SendResult(external_id=external_id, attempts=attempt)

    def send_bulk(
        self,
        recipients: Iterable[R],
        prepare: Callable[[R], PreparedMessage],
        record: Callable[[DeliveryOutcome[R]], None],
    ) -> BulkSendResult[R]:
        """
        Deliver one personalized message per recipient, isolating failures.

        For each recipient, in order: ``prepare`` (mint token, render),
        ``send``, then ``record`` (ledger entry). An exception while
        preparing or sending becomes a failed outcome for that recipient
        only; it is still recorded. A failing ``record`` is logged and the
        message is not re-sent.
        """
        result: BulkSendResult[R] = BulkSendResult()

        for recipient in recipients:
            outcome: DeliveryOutcome[R] = DeliveryOutcome(recipient=recipient)
            try:
                prepared = prepare(recipient)
                outcome.message = prepared.message
                outcome.context = prepared.context
                send_result = self.send(prepared.message)
                outcome.external_id = send_result.external_id
                outcome.attempts = send_result.attempts
            except Exception as e:
                outcome.error = str(e) or type(e).__name__
                logger.error(
                    "email_delivery_failed",
                    recipient=str(recipient),
                    error=outcome.error,
                    error_type=type(e).__name__,
                )

            try:
                record(outcome)
            except Exception as e:
                logger.error(
                    "email_ledger_write_failed",
                    recipient=str(recipient),
                    delivered=outcome.ok,
                    error=str(e),
                )

            if outcome.ok:
                result.sent.append(outcome)
            else:
                result.failed.append(outcome)

        return result
