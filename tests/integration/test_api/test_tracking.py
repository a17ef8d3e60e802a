"""Integration tests for email tracking endpoints."""
import pytest


@pytest.fixture
def sent_poll(client, auth_headers, poll_data, transport):
    """Poll whose invitation to jo@example.com failed."""
    transport.fail_for.add("jo@example.com")
    poll_id = client.post("/api/v1/polls", json=poll_data, headers=auth_headers).json()["poll_id"]
    client.post(f"/api/v1/polls/{poll_id}/invitations", headers=auth_headers)
    transport.fail_for.clear()
    return poll_id


def records(client, headers, **params):
    response = client.get("/api/v1/tracking/records", params=params, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


@pytest.mark.integration
class TestStats:
    """Statistics endpoints."""

    def test_subject_stats(self, client, auth_headers, sent_poll):
        response = client.get(f"/api/v1/tracking/stats/{sent_poll}", headers=auth_headers)

        assert response.status_code == 200
        stats = response.json()
        assert stats["total"] == 2
        assert stats["delivered"] == 1
        assert stats["failed"] == 1
        assert stats["delivery_rate"] == 50.0
        assert stats["open_rate"] == 0.0
        assert stats["by_type"]["poll_invitation"]["total"] == 2

    def test_subject_stats_no_emails(self, client, auth_headers, poll_data):
        poll_id = client.post("/api/v1/polls", json=poll_data, headers=auth_headers).json()["poll_id"]

        stats = client.get(f"/api/v1/tracking/stats/{poll_id}", headers=auth_headers).json()
        assert stats["total"] == 0
        assert stats["delivery_rate"] == 0.0

    def test_subject_stats_access(self, client, auth_headers, other_auth_headers, sent_poll):
        assert client.get(f"/api/v1/tracking/stats/{sent_poll}", headers=other_auth_headers).status_code == 403
        assert client.get("/api/v1/tracking/stats/missing", headers=auth_headers).status_code == 404
        assert client.get(f"/api/v1/tracking/stats/{sent_poll}").status_code == 401

    def test_case_stats_include_notices(self, client, auth_headers, sent_poll):
        notice = client.post("/api/v1/notices", json={
            "case_id": "case-42",
            "participants": [{"email": "pat@example.com"}],
        }, headers=auth_headers).json()
        client.post(f"/api/v1/notices/{notice['id']}/send", headers=auth_headers)

        stats = client.get("/api/v1/tracking/cases/case-42/stats", headers=auth_headers).json()

        assert stats["total"] == 3
        assert stats["by_type"]["mediation_notice"]["delivered"] == 1
        assert stats["by_type"]["poll_invitation"]["failed"] == 1

    def test_case_stats_scoped_to_caller(self, client, other_auth_headers, sent_poll):
        stats = client.get("/api/v1/tracking/cases/case-42/stats", headers=other_auth_headers).json()
        assert stats["total"] == 0


@pytest.mark.integration
class TestRecords:
    """Ledger listing."""

    def test_by_subject(self, client, auth_headers, sent_poll):
        rows = records(client, auth_headers, subject_id=sent_poll)

        assert {r["participant_email"]: r["status"] for r in rows} == {
            "pat@example.com": "sent",
            "jo@example.com": "failed",
        }
        failed = next(r for r in rows if r["status"] == "failed")
        assert "mailbox unavailable" in failed["error_message"]
        assert failed["retry_count"] == 0

    def test_by_case_and_type(self, client, auth_headers, sent_poll):
        assert len(records(client, auth_headers, case_id="case-42", type="poll_invitation")) == 2
        assert records(client, auth_headers, case_id="case-42", type="mediation_notice") == []

    def test_requires_filter(self, client, auth_headers):
        response = client.get("/api/v1/tracking/records", headers=auth_headers)
        assert response.status_code == 400

    def test_unknown_type(self, client, auth_headers, sent_poll):
        response = client.get("/api/v1/tracking/records", params={"subject_id": sent_poll, "type": "spam"},
                              headers=auth_headers)
        assert response.status_code == 400

    def test_other_mediator(self, client, other_auth_headers, sent_poll):
        response = client.get("/api/v1/tracking/records", params={"subject_id": sent_poll},
                              headers=other_auth_headers)
        assert response.status_code == 403
        assert records(client, other_auth_headers, case_id="case-42") == []


@pytest.mark.integration
class TestRetry:
    """Manual retry of failed emails."""

    def failed_id(self, client, auth_headers, poll_id):
        rows = records(client, auth_headers, subject_id=poll_id)
        return next(r["id"] for r in rows if r["status"] == "failed")

    def test_retry_success(self, client, auth_headers, sent_poll, transport):
        tracking_id = self.failed_id(client, auth_headers, sent_poll)

        response = client.post(f"/api/v1/tracking/{tracking_id}/retry", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["retry_count"] == 1
        assert body["tracking_id"] != tracking_id
        assert transport.attempts_for("jo@example.com")[-1] in transport.delivered

        stats = client.get(f"/api/v1/tracking/stats/{sent_poll}", headers=auth_headers).json()
        assert stats["total"] == 3
        assert stats["delivered"] == 2

    def test_retry_failure_is_reported(self, client, auth_headers, sent_poll, transport):
        transport.fail_for.add("jo@example.com")
        tracking_id = self.failed_id(client, auth_headers, sent_poll)

        response = client.post(f"/api/v1/tracking/{tracking_id}/retry", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["error"]

    def test_retry_limit(self, client, auth_headers, sent_poll, transport):
        transport.fail_for.add("jo@example.com")
        tracking_id = self.failed_id(client, auth_headers, sent_poll)

        for _ in range(3):
            assert client.post(f"/api/v1/tracking/{tracking_id}/retry", headers=auth_headers).status_code == 200

        response = client.post(f"/api/v1/tracking/{tracking_id}/retry", headers=auth_headers)
        assert response.status_code == 400
        assert "Maximum retry" in response.json()["detail"]

    def test_retry_sent_row(self, client, auth_headers, sent_poll):
        rows = records(client, auth_headers, subject_id=sent_poll)
        sent_id = next(r["id"] for r in rows if r["status"] == "sent")

        response = client.post(f"/api/v1/tracking/{sent_id}/retry", headers=auth_headers)
        assert response.status_code == 400

    def test_retry_other_mediator(self, client, auth_headers, other_auth_headers, sent_poll):
        tracking_id = self.failed_id(client, auth_headers, sent_poll)
        response = client.post(f"/api/v1/tracking/{tracking_id}/retry", headers=other_auth_headers)
        assert response.status_code == 403

    def test_retry_unknown(self, client, auth_headers):
        assert client.post("/api/v1/tracking/999/retry", headers=auth_headers).status_code == 404
