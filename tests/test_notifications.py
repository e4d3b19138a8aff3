"""
Notification inbox tests.

Workflow transitions notify the acting user and the process starter; the
inbox endpoints only ever show the caller's own notifications.
"""
import pytest

from ipflow.services.notification import NotificationService

USER_ID = "2"
REVIEWER_ID = "3"


@pytest.fixture()
def started(engine, definition):
    """Process started by the user and approved once by the reviewer."""
    process = engine.start(definition.id, "PAT-1", USER_ID)
    engine.advance(process.id, REVIEWER_ID, "approve")
    return process


class TestWorkflowNotifications:
    def test_starter_and_actor_are_notified(self, started):
        user_items, user_total = NotificationService.list_for_recipient(USER_ID)
        reviewer_items, reviewer_total = NotificationService.list_for_recipient(REVIEWER_ID)

        assert user_total == 2
        assert reviewer_total == 1
        assert [n.event_kind for n in user_items] == ["advanced", "started"]
        assert reviewer_items[0].definition_id == started.definition_id
        assert reviewer_items[0].process_id == started.id

    def test_message_names_workflow_and_step(self, started):
        [latest, _] = NotificationService.list_for_recipient(USER_ID)[0]
        assert latest.title == "Workflow notice - Patent filing approval"
        assert "at step 1" in latest.message
        assert "Now at: Manager approval" in latest.message

    def test_severity_follows_event(self, engine, started):
        engine.advance(started.id, REVIEWER_ID, "reject", "Prior art found")
        [latest] = NotificationService.list_for_recipient(REVIEWER_ID, limit=1)[0]
        assert latest.event_kind == "rejected"
        assert latest.severity == "warning"
        assert "Prior art found" in latest.message

    def test_fan_out_dedupes_recipients(self):
        created = NotificationService.fan_out(
            recipients=[USER_ID, "", USER_ID, REVIEWER_ID], event_kind="paused", title="Paused",
        )
        assert [n.recipient for n in created] == [USER_ID, REVIEWER_ID]

    @pytest.mark.parametrize("overrides", [
        {"event_kind": "archived"},
        {"event_kind": "paused", "severity": "critical"},
    ])
    def test_fan_out_rejects_unknown_kind_or_severity(self, overrides):
        with pytest.raises(ValueError):
            NotificationService.fan_out(recipients=[USER_ID], title="Notice", **overrides)
        assert NotificationService.unread_count(USER_ID) == 0


class TestInboxApi:
    def test_list(self, client, started, user_headers):
        res = client.get("/api/v1/notifications", headers=user_headers)
        assert res.status_code == 200
        data = res.get_json()
        assert data["total"] == 2
        assert data["unread_count"] == 2
        assert all(n["recipient"] == USER_ID for n in data["items"])

    def test_unread_count(self, client, started, reviewer_headers):
        res = client.get("/api/v1/notifications/unread-count", headers=reviewer_headers)
        assert res.get_json() == {"unread_count": 1}

    def test_mark_read(self, client, started, user_headers):
        first = client.get("/api/v1/notifications", headers=user_headers).get_json()["items"][0]

        res = client.patch(f"/api/v1/notifications/{first['id']}/read", headers=user_headers)
        assert res.status_code == 200
        assert res.get_json()["is_read"] is True
        assert res.get_json()["read_at"] is not None

        res = client.get("/api/v1/notifications?unread_only=true", headers=user_headers)
        assert res.get_json()["total"] == 1

    def test_cannot_mark_someone_elses(self, client, started, user_headers, reviewer_headers):
        theirs = client.get("/api/v1/notifications", headers=reviewer_headers).get_json()["items"][0]
        res = client.patch(f"/api/v1/notifications/{theirs['id']}/read", headers=user_headers)
        assert res.status_code == 404

    def test_mark_all_read(self, client, started, user_headers, reviewer_headers):
        res = client.post("/api/v1/notifications/mark-all-read", headers=user_headers)
        assert res.get_json() == {"marked_read": 2}
        assert client.get("/api/v1/notifications/unread-count", headers=user_headers).get_json() == {
            "unread_count": 0,
        }
        assert client.get("/api/v1/notifications/unread-count", headers=reviewer_headers).get_json() == {
            "unread_count": 1,
        }

    def test_pagination(self, client, started, user_headers):
        res = client.get("/api/v1/notifications?limit=1&offset=1", headers=user_headers)
        data = res.get_json()
        assert data["total"] == 2
        assert [n["event_kind"] for n in data["items"]] == ["started"]
