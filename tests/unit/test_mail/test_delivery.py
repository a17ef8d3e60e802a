"""Unit tests for the delivery engine."""
import pytest

from app.mail.delivery import DeliveryEngine, PreparedMessage, Recipient
from app.mail.transport import EmailMessage, TransportError


class ScriptedTransport:
    """Raises the scripted errors in order, then succeeds."""

    def __init__(self, errors=()):
        self.errors = list(errors)
        self.calls = 0

    def send(self, message):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return f"id-{self.calls}"


def message(to="pat@example.com"):
    return EmailMessage(sender="Scheduling <s@example.test>", recipients=[to], subject="Hi", html="<p>Hi</p>")


def prepare(recipient):
    return PreparedMessage(message=message(recipient.email), context={"email": recipient.email})


@pytest.mark.unit
class TestSend:
    """Tests for single-message sends with bounded retries."""

    def test_first_attempt_succeeds(self):
        sleeps = []
        engine = DeliveryEngine(ScriptedTransport(), sleep=sleeps.append)

        result = engine.send(message())

        assert result.external_id == "id-1"
        assert result.attempts == 1
        assert sleeps == []

    def test_linear_backoff_between_attempts(self):
        """Fail, fail, succeed: waits 1s then 2s and reports 3 attempts."""
        sleeps = []
        transport = ScriptedTransport([TransportError("busy"), TransportError("busy")])
        engine = DeliveryEngine(transport, max_attempts=3, base_delay=1.0, sleep=sleeps.append)

        result = engine.send(message())

        assert result.attempts == 3
        assert sleeps == [1.0, 2.0]

    def test_gives_up_after_max_attempts(self):
        sleeps = []
        transport = ScriptedTransport([TransportError("busy")] * 5)
        engine = DeliveryEngine(transport, max_attempts=3, base_delay=0.5, sleep=sleeps.append)

        with pytest.raises(TransportError, match="busy"):
            engine.send(message())

        assert transport.calls == 3
        assert sleeps == [0.5, 1.0]

    def test_non_retryable_error_not_retried(self):
        sleeps = []
        transport = ScriptedTransport([TransportError("no such mailbox", retryable=False)])
        engine = DeliveryEngine(transport, sleep=sleeps.append)

        with pytest.raises(TransportError):
            engine.send(message())

        assert transport.calls == 1
        assert sleeps == []

    def test_single_attempt_policy(self):
        transport = ScriptedTransport([TransportError("busy")])
        engine = DeliveryEngine(transport, max_attempts=1, sleep=lambda _: None)

        with pytest.raises(TransportError):
            engine.send(message())
        assert transport.calls == 1

    def test_invalid_policy(self):
        with pytest.raises(ValueError):
            DeliveryEngine(ScriptedTransport(), max_attempts=0)


@pytest.mark.unit
class TestSendBulk:
    """Tests for failure-isolated bulk sends."""

    def test_failures_are_isolated(self, transport, delivery_engine):
        transport.fail_for.add("b@example.com")
        recorded = []

        result = delivery_engine.send_bulk(
            [Recipient("a@example.com"), Recipient("b@example.com"), Recipient("c@example.com")],
            prepare,
            recorded.append,
        )

        assert [o.recipient.email for o in result.sent] == ["a@example.com", "c@example.com"]
        assert [o.recipient.email for o in result.failed] == ["b@example.com"]
        assert len(transport.attempts_for("a@example.com")) == 1
        assert len(transport.attempts_for("c@example.com")) == 1
        assert [o.recipient.email for o in recorded] == ["a@example.com", "b@example.com", "c@example.com"]

    def test_outcome_details(self, transport, delivery_engine):
        transport.fail_for.add("b@example.com")
        result = delivery_engine.send_bulk([Recipient("a@example.com"), Recipient("b@example.com")],
                                           prepare, lambda outcome: None)

        ok, failed = result.outcomes
        assert ok.ok and ok.external_id == "fake-1" and ok.attempts == 1
        assert ok.context == {"email": "a@example.com"}
        assert not failed.ok
        assert "mailbox unavailable" in failed.error
        assert failed.message is not None

    def test_prepare_failure_recorded_without_sending(self, transport, delivery_engine):
        def broken_prepare(recipient):
            if recipient.email == "a@example.com":
                raise RuntimeError("render failed")
            return prepare(recipient)

        recorded = []
        result = delivery_engine.send_bulk([Recipient("a@example.com"), Recipient("b@example.com")],
                                           broken_prepare, recorded.append)

        assert [o.error for o in result.failed] == ["render failed"]
        assert result.failed[0].message is None
        assert transport.attempts_for("a@example.com") == []
        assert len(recorded) == 2

    def test_record_failure_does_not_resend(self, transport, delivery_engine):
        """A ledger write that fails after delivery never triggers a second send."""
        def broken_record(outcome):
            raise RuntimeError("ledger unavailable")

        result = delivery_engine.send_bulk([Recipient("a@example.com")], prepare, broken_record)

        assert len(result.sent) == 1
        assert len(transport.attempts) == 1

    def test_empty_recipients(self, delivery_engine):
        result = delivery_engine.send_bulk([], prepare, lambda outcome: None)
        assert result.outcomes == []
