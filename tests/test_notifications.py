"""
Notification tests — publish / dispatch and the read API.
"""
import pytest

from licitaflow.models.notification import Notification
from licitaflow.services.notification import NotificationService


@pytest.fixture()
def listener():
    received = []

    def _listen(payload):
        received.append(payload)

    NotificationService.subscribe(_listen)
    yield received
    NotificationService.unsubscribe(_listen)


class TestPublish:
    def test_listener_receives_committed_event(self, new_process, listener):
        process = new_process()
        assert [p["event"] for p in listener] == ["process_created"]
        assert listener[0]["process_id"] == process.id
        assert listener[0]["id"] is not None

    def test_failing_listener_does_not_break_workflow(self, new_process):
        def _boom(payload):
            raise RuntimeError("socket closed")

        NotificationService.subscribe(_boom)
        try:
            process = new_process()
        finally:
            NotificationService.unsubscribe(_boom)
        assert process.id is not None

    def test_unknown_event_rejected(self, org):
        with pytest.raises(ValueError):
            NotificationService.publish("process_exploded", title="x")


class TestNotificationApi:
    def test_only_visible_process_events(self, client, new_process, org, auth_header):
        new_process()
        alice = client.get("/api/v1/notifications", headers=auth_header(org.alice)).get_json()
        bruno = client.get("/api/v1/notifications", headers=auth_header(org.bruno)).get_json()
        assert alice["total"] == 1
        assert bruno["total"] == 0

    def test_mark_read_and_count(self, client, new_process, org, auth_header):
        new_process()
        headers = auth_header(org.alice)
        assert client.get("/api/v1/notifications/unread-count", headers=headers) \
            .get_json()["unread_count"] == 1

        notif = Notification.query.first()
        res = client.post(f"/api/v1/notifications/{notif.id}/read", headers=headers)
        assert res.status_code == 200
        assert res.get_json()["is_read"] is True
        assert client.get("/api/v1/notifications/unread-count", headers=headers) \
            .get_json()["unread_count"] == 0

    def test_mark_invisible_is_404(self, client, new_process, org, auth_header):
        new_process()
        notif = Notification.query.first()
        res = client.post(f"/api/v1/notifications/{notif.id}/read", headers=auth_header(org.bruno))
        assert res.status_code == 404

    def test_read_all(self, client, new_process, org, auth_header):
        new_process("PBDOC-1")
        new_process("PBDOC-2")
        res = client.post("/api/v1/notifications/read-all", headers=auth_header(org.alice))
        assert res.get_json() == {"marked": 2}
