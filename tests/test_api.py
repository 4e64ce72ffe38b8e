from conftest import CONFIRMATION_GROUP_ID, GROUP_ID, SENDER_ID, unix_time
from fastapi.testclient import TestClient

from event_ingest.services.confirmation import REASON_MESSAGES, ReasonCode

NOT_AN_EVENT = {"isEvent": False, "searchKeys": [], "reason": "not_event"}


def test_read_root(client):
    response = client.get("/api/")
    assert response.status_code == 200
    assert response.json() == {"message": "Event ingest API is running!"}


def test_health_ok(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": True, "queue_pending": 0}


def test_health_degraded_when_database_unreachable(client, store):
    store.reachable = False

    response = client.get("/api/health")

    assert response.json()["status"] == "degraded"
    assert response.json()["database"] is False


def test_message_is_queued_and_processed(app, store, transport, llm_client):
    llm_client.script["classification"] = NOT_AN_EVENT
    payload = {
        "id": "wamid-1",
        "senderId": SENDER_ID,
        "groupId": GROUP_ID,
        "text": "מישהו יודע איפה אפשר לתקן אופניים בחיפה?",
        "timestamp": unix_time(2026, 2, 20),
    }

    with TestClient(app) as client:
        response = client.post("/api/messages", json=payload)
        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "queued"
        assert body["record_id"]

    # the lifespan drains the queue on shutdown
    assert app.state.context is None
    assert llm_client.stages_called() == ["classification"]
    assert store.records == {}
    texts = transport.texts_for(CONFIRMATION_GROUP_ID)
    assert REASON_MESSAGES[ReasonCode.PROCESSING_STARTED] in texts[0]
    assert REASON_MESSAGES[ReasonCode.NOT_EVENT] in texts[-1]


def test_message_from_other_group_is_ignored(client, store):
    response = client.post(
        "/api/messages", json={"id": "wamid-2", "groupId": "999@g.us", "text": "שלום"}
    )

    assert response.status_code == 202
    assert response.json()["status"] == "ignored"
    assert store.records == {}


def test_message_without_group_is_rejected(client):
    response = client.post("/api/messages", json={"id": "wamid-3", "text": "שלום"})
    assert response.status_code == 422


def test_queue_status(client):
    response = client.get("/api/queue")
    assert response.status_code == 200
    assert response.json() == {
        "pending": 0,
        "processing": False,
        "processed_total": 0,
        "failed_total": 0,
    }
