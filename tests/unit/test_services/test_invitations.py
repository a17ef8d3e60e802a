"""Unit tests for the invitation, notice and retry pipelines."""
import re

import pytest

from app.core.constants import (
    EMAIL_STATUS_FAILED,
    EMAIL_STATUS_SENT,
    EMAIL_TYPE_MEDIATION_NOTICE,
    EMAIL_TYPE_POLL_INVITATION,
)
from app.core.exceptions import AccessDeniedError, InvalidRequestError, PollStateError, RetryNotAllowedError
from app.db.models import EmailTracking
from app.mail.transport import EmailAttachment
from app.services.invitations import retry_failed_email, send_mediation_notices, send_poll_invitations
from app.services.notice import create_notice
from app.services.tokens import validate_token

MEDIATOR = "mediator-1"
OTHER_MEDIATOR = "mediator-2"

TOKEN_FIELD = re.compile(r'name="token" value="([A-Za-z0-9_-]+)"')
TRACKING_KEY = re.compile(r"tk=([0-9a-f]{32})")


def rows_for(db, email):
    return db.query(EmailTracking).filter(
        EmailTracking.participant_email == email
    ).order_by(EmailTracking.id).all()


@pytest.fixture
def notice(db_session):
    return create_notice(db_session, MEDIATOR, {
        "case_id": "case-42",
        "case_name": "Smith v. Jones",
        "notice_type": "scheduled",
        "mediation_date": "2025-03-03",
        "mediation_time": "14:00",
        "location": "Suite 400",
        "participants": [
            {"email": "pat@example.com", "name": "Pat Smith"},
            {"email": "jo@example.com", "name": "Jo Jones"},
        ],
    })


@pytest.mark.unit
class TestSendPollInvitations:
    """Tests for send_poll_invitations."""

    def test_all_delivered(self, db_session, make_poll, delivery_engine, transport, test_settings):
        poll = make_poll()

        summary = send_poll_invitations(db_session, poll.id, MEDIATOR, delivery_engine, test_settings)

        assert summary["sent"] == 2
        assert summary["failed"] == 0
        assert summary["errors"] == []
        assert [r["email"] for r in summary["results"]] == ["pat@example.com", "jo@example.com"]
        assert all(r["tracking_id"] for r in summary["results"])
        assert len(transport.delivered) == 2

    def test_partial_failure_is_isolated(self, db_session, make_poll, delivery_engine, transport,
                                         sleeps, test_settings):
        """One bad address neither stops the batch nor gets the good one re-sent."""
        poll = make_poll()
        transport.fail_for.add("jo@example.com")

        summary = send_poll_invitations(db_session, poll.id, MEDIATOR, delivery_engine, test_settings)

        assert summary["sent"] == 1
        assert summary["failed"] == 1
        assert summary["errors"][0]["email"] == "jo@example.com"
        assert "mailbox unavailable" in summary["errors"][0]["error"]

        assert len(transport.attempts_for("pat@example.com")) == 1
        assert len(transport.attempts_for("jo@example.com")) == 3
        assert sleeps == [1.0, 2.0]

        [pat_row] = rows_for(db_session, "pat@example.com")
        [jo_row] = rows_for(db_session, "jo@example.com")
        assert pat_row.status == EMAIL_STATUS_SENT
        assert pat_row.external_id == "fake-1"
        assert jo_row.status == EMAIL_STATUS_FAILED
        assert "mailbox unavailable" in jo_row.error_message
        assert jo_row.retry_count == 0

    def test_transient_failure_recovers(self, db_session, make_poll, delivery_engine, transport,
                                        sleeps, test_settings):
        poll = make_poll()
        transport.flaky["pat@example.com"] = 1

        summary = send_poll_invitations(db_session, poll.id, MEDIATOR, delivery_engine, test_settings)

        assert summary["sent"] == 2
        assert sleeps == [1.0]
        assert len(rows_for(db_session, "pat@example.com")) == 1

    def test_draft_becomes_active(self, db_session, make_poll, delivery_engine, test_settings):
        poll = make_poll()
        send_poll_invitations(db_session, poll.id, MEDIATOR, delivery_engine, test_settings)

        db_session.refresh(poll)
        assert poll.status == "active"
        assert poll.invitations_sent_at is not None

    def test_draft_stays_draft_when_nothing_delivered(self, db_session, make_poll, delivery_engine,
                                                      transport, test_settings):
        poll = make_poll()
        transport.fail_for.update({"pat@example.com", "jo@example.com"})

        summary = send_poll_invitations(db_session, poll.id, MEDIATOR, delivery_engine, test_settings)

        db_session.refresh(poll)
        assert summary["sent"] == 0
        assert poll.status == "draft"
        assert poll.invitations_sent_at is None

    def test_email_carries_token_and_tracking_key(self, db_session, make_poll, delivery_engine,
                                                  transport, test_settings):
        poll = make_poll()
        send_poll_invitations(db_session, poll.id, MEDIATOR, delivery_engine, test_settings)

        [message] = transport.attempts_for("pat@example.com")
        token = TOKEN_FIELD.search(message.html).group(1)
        tracking_key = TRACKING_KEY.search(message.html).group(1)

        assert validate_token(db_session, poll.id, "pat@example.com", token) is True
        assert f"https://app.example.test/poll/{poll.id}?email=pat%40example.com&amp;token={token}" in message.html
        assert "https://api.example.test/api/track-email-open?type=poll_invitation" in message.html
        assert 'action="https://api.example.test/api/vote"' in message.html
        assert rows_for(db_session, "pat@example.com")[0].tracking_key == tracking_key
        assert message.headers["X-Poll-ID"] == poll.id

    def test_reinvite_replaces_tokens_and_appends_rows(self, db_session, make_poll, delivery_engine,
                                                      transport, test_settings):
        poll = make_poll()
        send_poll_invitations(db_session, poll.id, MEDIATOR, delivery_engine, test_settings)
        first_token = TOKEN_FIELD.search(transport.delivered[0].html).group(1)

        send_poll_invitations(db_session, poll.id, MEDIATOR, delivery_engine, test_settings)
        second_token = TOKEN_FIELD.search(transport.delivered[2].html).group(1)

        assert validate_token(db_session, poll.id, "pat@example.com", first_token) is False
        assert validate_token(db_session, poll.id, "pat@example.com", second_token) is True
        assert len(rows_for(db_session, "pat@example.com")) == 2

    def test_token_failure_is_isolated(self, db_session, make_poll, delivery_engine, transport,
                                       test_settings, monkeypatch):
        from app.services import invitations

        real_issue = invitations.issue_token

        def issue(db, poll_id, email, now=None):
            if email == "jo@example.com":
                raise RuntimeError("token store unavailable")
            return real_issue(db, poll_id, email, now=now)

        monkeypatch.setattr(invitations, "issue_token", issue)
        poll = make_poll()

        summary = send_poll_invitations(db_session, poll.id, MEDIATOR, delivery_engine, test_settings)

        assert summary["sent"] == 1
        assert transport.attempts_for("jo@example.com") == []
        [jo_row] = rows_for(db_session, "jo@example.com")
        assert jo_row.status == EMAIL_STATUS_FAILED
        assert "token store unavailable" in jo_row.error_message

    def test_counters_refreshed(self, db_session, make_poll, delivery_engine, transport, test_settings):
        poll = make_poll()
        transport.fail_for.add("jo@example.com")

        send_poll_invitations(db_session, poll.id, MEDIATOR, delivery_engine, test_settings)

        db_session.refresh(poll)
        assert (poll.emails_sent, poll.emails_opened, poll.emails_failed) == (1, 0, 1)

    def test_active_poll_can_be_reinvited(self, db_session, make_poll, delivery_engine, test_settings):
        poll = make_poll(status="active")
        summary = send_poll_invitations(db_session, poll.id, MEDIATOR, delivery_engine, test_settings)
        assert summary["sent"] == 2

    def test_finalized_poll_rejected(self, db_session, make_poll, delivery_engine, transport, test_settings):
        poll = make_poll(status="finalized")
        with pytest.raises(PollStateError):
            send_poll_invitations(db_session, poll.id, MEDIATOR, delivery_engine, test_settings)
        assert transport.attempts == []

    def test_no_participants_rejected(self, db_session, make_poll, delivery_engine, test_settings):
        poll = make_poll(participants=[])
        with pytest.raises(InvalidRequestError):
            send_poll_invitations(db_session, poll.id, MEDIATOR, delivery_engine, test_settings)

    def test_other_owner_rejected(self, db_session, make_poll, delivery_engine, transport, test_settings):
        poll = make_poll()
        with pytest.raises(AccessDeniedError):
            send_poll_invitations(db_session, poll.id, OTHER_MEDIATOR, delivery_engine, test_settings)
        assert transport.attempts == []


@pytest.mark.unit
class TestSendMediationNotices:
    """Tests for send_mediation_notices."""

    def test_notice_sent(self, db_session, notice, delivery_engine, transport, test_settings):
        summary = send_mediation_notices(db_session, notice.id, MEDIATOR, delivery_engine, test_settings)

        db_session.refresh(notice)
        assert summary["sent"] == 2
        assert notice.status == "sent"
        assert notice.sent_at is not None
        assert notice.emails_sent == 2
        message = transport.delivered[0]
        assert message.subject == "Mediation Notice - Smith v. Jones"
        assert "Monday, March 3, 2025 at 2:00 PM" in message.html
        assert "type=mediation_notice" in message.html
        assert "token=" not in message.html

    def test_notice_with_attachment(self, db_session, notice, delivery_engine, transport, test_settings):
        pdf = EmailAttachment(filename="notice.pdf", content=b"%PDF-1.4")

        send_mediation_notices(db_session, notice.id, MEDIATOR, delivery_engine, test_settings, attachments=[pdf])

        db_session.refresh(notice)
        assert notice.pdf_file_name == "notice.pdf"
        assert all(m.attachments == [pdf] for m in transport.delivered)
        rows = db_session.query(EmailTracking).filter(EmailTracking.type == EMAIL_TYPE_MEDIATION_NOTICE).all()
        assert all(r.has_attachment and r.attachment_name == "notice.pdf" for r in rows)

    def test_notice_failed_when_nothing_delivered(self, db_session, notice, delivery_engine, transport,
                                                  test_settings):
        transport.fail_for.update({"pat@example.com", "jo@example.com"})

        summary = send_mediation_notices(db_session, notice.id, MEDIATOR, delivery_engine, test_settings)

        db_session.refresh(notice)
        assert summary["failed"] == 2
        assert notice.status == "failed"
        assert notice.emails_failed == 2

    def test_notice_partial_failure_is_sent(self, db_session, notice, delivery_engine, transport, test_settings):
        transport.fail_for.add("jo@example.com")

        send_mediation_notices(db_session, notice.id, MEDIATOR, delivery_engine, test_settings)

        db_session.refresh(notice)
        assert notice.status == "sent"

    def test_failed_resend_keeps_sent_status(self, db_session, notice, delivery_engine, transport, test_settings):
        send_mediation_notices(db_session, notice.id, MEDIATOR, delivery_engine, test_settings)
        db_session.refresh(notice)
        first_sent_at = notice.sent_at

        transport.fail_for.update({"pat@example.com", "jo@example.com"})
        summary = send_mediation_notices(db_session, notice.id, MEDIATOR, delivery_engine, test_settings)

        db_session.refresh(notice)
        assert summary["failed"] == 2
        assert notice.status == "sent"
        assert notice.sent_at == first_sent_at

    def test_notice_other_owner(self, db_session, notice, delivery_engine, test_settings):
        with pytest.raises(AccessDeniedError):
            send_mediation_notices(db_session, notice.id, OTHER_MEDIATOR, delivery_engine, test_settings)


@pytest.mark.unit
class TestRetryFailedEmail:
    """Tests for manual retries of failed ledger rows."""

    @pytest.fixture
    def failed_row(self, db_session, make_poll, delivery_engine, transport, test_settings):
        poll = make_poll()
        transport.fail_for.add("jo@example.com")
        send_poll_invitations(db_session, poll.id, MEDIATOR, delivery_engine, test_settings)
        transport.fail_for.clear()
        return rows_for(db_session, "jo@example.com")[0]

    def test_retry_success(self, db_session, failed_row, delivery_engine, transport, test_settings):
        result = retry_failed_email(db_session, failed_row.id, MEDIATOR, delivery_engine, test_settings)

        assert result["success"] is True
        assert result["retry_count"] == 1
        assert result["tracking_id"] != failed_row.id

        old, new = rows_for(db_session, "jo@example.com")
        assert old.status == EMAIL_STATUS_FAILED
        assert old.retry_count == 1
        assert new.status == EMAIL_STATUS_SENT
        assert new.retry_count == 1
        assert new.id == result["tracking_id"]

    def test_retry_mints_fresh_token(self, db_session, failed_row, delivery_engine, transport, test_settings):
        retry_failed_email(db_session, failed_row.id, MEDIATOR, delivery_engine, test_settings)

        token = TOKEN_FIELD.search(transport.delivered[-1].html).group(1)
        assert validate_token(db_session, failed_row.subject_id, "jo@example.com", token) is True

    def test_retry_that_fails_again(self, db_session, failed_row, delivery_engine, transport, test_settings):
        transport.fail_for.add("jo@example.com")

        result = retry_failed_email(db_session, failed_row.id, MEDIATOR, delivery_engine, test_settings)

        assert result["success"] is False
        assert "mailbox unavailable" in result["error"]
        statuses = [row.status for row in rows_for(db_session, "jo@example.com")]
        assert statuses == [EMAIL_STATUS_FAILED, EMAIL_STATUS_FAILED]

    def test_only_failed_rows(self, db_session, failed_row, delivery_engine, test_settings):
        [sent_row] = rows_for(db_session, "pat@example.com")
        with pytest.raises(RetryNotAllowedError):
            retry_failed_email(db_session, sent_row.id, MEDIATOR, delivery_engine, test_settings)

    def test_retry_limit(self, db_session, failed_row, delivery_engine, transport, test_settings):
        failed_row.retry_count = test_settings.MAX_MANUAL_RETRIES
        db_session.commit()
        attempts = len(transport.attempts)

        with pytest.raises(RetryNotAllowedError, match="Maximum retry"):
            retry_failed_email(db_session, failed_row.id, MEDIATOR, delivery_engine, test_settings)
        assert len(transport.attempts) == attempts

    def test_ownership_checked_first(self, db_session, failed_row, delivery_engine, test_settings):
        """Another mediator learns nothing about the row's state."""
        [sent_row] = rows_for(db_session, "pat@example.com")
        for row in (failed_row, sent_row):
            with pytest.raises(AccessDeniedError):
                retry_failed_email(db_session, row.id, OTHER_MEDIATOR, delivery_engine, test_settings)

    def test_finalized_poll(self, db_session, failed_row, delivery_engine, test_settings):
        from app.services.poll import get_poll

        poll = get_poll(db_session, failed_row.subject_id)
        poll.status = "finalized"
        db_session.commit()

        with pytest.raises(PollStateError):
            retry_failed_email(db_session, failed_row.id, MEDIATOR, delivery_engine, test_settings)

    def test_retry_notice_without_attachment(self, db_session, notice, delivery_engine, transport, test_settings):
        pdf = EmailAttachment(filename="notice.pdf", content=b"%PDF-1.4")
        transport.fail_for.add("jo@example.com")
        send_mediation_notices(db_session, notice.id, MEDIATOR, delivery_engine, test_settings, attachments=[pdf])
        transport.fail_for.clear()
        [failed] = rows_for(db_session, "jo@example.com")

        result = retry_failed_email(db_session, failed.id, MEDIATOR, delivery_engine, test_settings)

        assert result["success"] is True
        assert transport.delivered[-1].attachments == []
        assert rows_for(db_session, "jo@example.com")[-1].type == EMAIL_TYPE_MEDIATION_NOTICE

    def test_invitation_type_kept(self, db_session, failed_row, delivery_engine, test_settings):
        retry_failed_email(db_session, failed_row.id, MEDIATOR, delivery_engine, test_settings)
        assert rows_for(db_session, "jo@example.com")[-1].type == EMAIL_TYPE_POLL_INVITATION
