"""
Integration tests for the /chat endpoints.
"""
import uuid

from conftest import TestSessionLocal, chat_body, parse_sse
from app.main import app
from app.api.routes import system
from app.core.plan_limits import MAX_MESSAGES_PER_DAY
from app.db.models.message import Message
from app.db.models.usage import UsageRecord
from app.services import chat_service
from app.services.stream_registry import get_stream_registry


def _set_usage(db, user_id, searches=0, deep_searches=0):
    db.add(UsageRecord(user_id=user_id, date=UsageRecord.today(), searches_used=searches, deep_searches_used=deep_searches))
    db.commit()


def test_guest_turn_streams_events(client):
    body = chat_body()
    response = client.post("/chat", json=body)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["x-chat-id"] == body["id"]

    frames = parse_sse(response.text)
    assert frames[0][0] == "start"
    assert frames[0][1]["streamId"] == response.headers["x-stream-id"]
    assert frames[-1][0] == "finish"


def test_guest_second_turn_rejected(client, guest_tracker):
    assert client.post("/chat", json=chat_body()).status_code == 200

    response = client.post("/chat", json=chat_body())
    assert response.status_code == 403
    detail = response.json()["detail"]
    assert detail["reason"] == "guest_limit_reached"
    assert detail["requiresLogin"] is True
    assert detail["userType"] == "guest"


def test_guest_deep_search_rejected_without_consuming_search(client, fake_provider):
    response = client.post("/chat", json=chat_body(search_mode="deep-search"))
    assert response.status_code == 403
    assert response.json()["detail"]["reason"] == "guest_deep_search_not_allowed"
    assert fake_provider.stream_calls == []

    assert client.post("/chat", json=chat_body()).status_code == 200


def test_request_aliases_accepted(client, test_user):
    _, headers = test_user
    body = {
        "conversationId": str(uuid.uuid4()),
        "message": {"id": str(uuid.uuid4()), "content": "Hi there"},
        "modelSelection": "chat-model",
        "visibility": "public",
        "searchMode": "search",
    }
    response = client.post("/chat", json=body, headers=headers)
    assert response.status_code == 200


def test_malformed_body_is_400(client, test_user):
    _, headers = test_user
    assert client.post("/chat", json={"id": "not-a-uuid"}, headers=headers).status_code == 400
    assert client.post("/chat", content=b"{not json", headers={**headers, "Content-Type": "application/json"}).status_code == 400

    body = chat_body()
    body["message"]["parts"] = [{"type": "text", "text": "x" * 2001}]
    assert client.post("/chat", json=body, headers=headers).status_code == 400


def test_free_user_at_limit_rejected(client, db, test_user, fake_provider):
    user, headers = test_user
    _set_usage(db, user.id, searches=10)

    response = client.post("/chat", json=chat_body(), headers=headers)
    assert response.status_code == 403
    detail = response.json()["detail"]
    assert detail["reason"] == "limit_exceeded"
    assert detail["requiresUpgrade"] is True
    assert detail["requiresContact"] is False
    assert fake_provider.stream_calls == []


def test_free_user_last_search_allowed_and_counted(client, db, test_user):
    user, headers = test_user
    _set_usage(db, user.id, searches=9)

    response = client.post("/chat", json=chat_body(), headers=headers)
    assert response.status_code == 200
    assert parse_sse(response.text)[-1][0] == "finish"

    db.expire_all()
    assert db.query(UsageRecord).filter(UsageRecord.user_id == user.id).first().searches_used == 10
    assert client.post("/chat", json=chat_body(), headers=headers).status_code == 403


def test_pro_user_deep_search_limit(client, db, make_user):
    user, headers = make_user(email="pro@example.com", plan="pro")
    _set_usage(db, user.id, deep_searches=20)

    response = client.post("/chat", json=chat_body(search_mode="deep-search"), headers=headers)
    assert response.status_code == 403
    assert response.json()["detail"]["requiresContact"] is True

    assert client.post("/chat", json=chat_body(search_mode="search"), headers=headers).status_code == 200


def test_message_cap_returns_429(client, db, test_user, monkeypatch):
    user, headers = test_user
    monkeypatch.setitem(MAX_MESSAGES_PER_DAY, "regular", 1)
    chat_service.save_chat(db, "chat-1", user.id, "Busy")
    chat_service.save_messages(db, [
        {"id": str(uuid.uuid4()), "chat_id": "chat-1", "role": "user", "parts": [{"type": "text", "text": "one"}]},
        {"id": str(uuid.uuid4()), "chat_id": "chat-1", "role": "user", "parts": [{"type": "text", "text": "two"}]},
    ])

    response = client.post("/chat", json=chat_body(), headers=headers)
    assert response.status_code == 429


def test_turn_on_foreign_chat_forbidden(client, db, make_user, fake_provider):
    owner, _ = make_user(email="owner@example.com")
    _, intruder_headers = make_user(email="intruder@example.com")
    chat_id = str(uuid.uuid4())
    chat_service.save_chat(db, chat_id, owner.id, "Mine")

    response = client.post("/chat", json=chat_body(chat_id=chat_id), headers=intruder_headers)
    assert response.status_code == 403
    assert response.json()["detail"] == "Forbidden"
    assert fake_provider.stream_calls == []
    db.expire_all()
    assert db.query(Message).count() == 0


def test_message_id_reused_across_chats_is_500(client, db, test_user, fake_provider):
    _, headers = test_user
    message_id = str(uuid.uuid4())
    first = client.post("/chat", json=chat_body(message_id=message_id), headers=headers)
    assert first.status_code == 200
    calls_before = len(fake_provider.stream_calls)

    chat_id = str(uuid.uuid4())
    response = client.post("/chat", json=chat_body(chat_id=chat_id, message_id=message_id), headers=headers)
    assert response.status_code == 500
    assert len(fake_provider.stream_calls) == calls_before
    assert chat_service.get_messages_by_chat_id(db, chat_id) == []


def test_resume_disabled_returns_204(client):
    app.dependency_overrides[get_stream_registry] = lambda: None
    assert client.get("/chat", params={"chatId": "anything"}).status_code == 204


def test_resume_requires_chat_id(client):
    assert client.get("/chat").status_code == 400


def test_resume_unknown_chat_404(client):
    assert client.get("/chat", params={"chatId": "missing"}).status_code == 404


def test_resume_private_chat_of_other_identity_403(client, db, make_user):
    owner, _ = make_user(email="owner@example.com")
    _, other_headers = make_user(email="other@example.com")
    chat_service.save_chat(db, "private-chat", owner.id, "Private")
    chat_service.create_stream_id(db, str(uuid.uuid4()), "private-chat")

    assert client.get("/chat", params={"chatId": "private-chat"}, headers=other_headers).status_code == 403
    assert client.get("/chat", params={"chatId": "private-chat"}).status_code == 403


def test_resume_chat_without_streams_404(client, db, test_user):
    user, headers = test_user
    chat_service.save_chat(db, "quiet-chat", user.id, "Quiet")
    response = client.get("/chat", params={"chatId": "quiet-chat"}, headers=headers)
    assert response.status_code == 404


def test_resume_finished_stream_204(client, test_user):
    _, headers = test_user
    body = chat_body()
    assert client.post("/chat", json=body, headers=headers).status_code == 200

    response = client.get("/chat", params={"conversationId": body["id"]}, headers=headers)
    assert response.status_code == 204


def test_delete_chat(client, db, test_user):
    user, headers = test_user
    body = chat_body()
    client.post("/chat", json=body, headers=headers)

    response = client.delete("/chat", params={"id": body["id"]}, headers=headers)
    assert response.status_code == 200
    assert response.json()["id"] == body["id"]

    db.expire_all()
    assert chat_service.get_chat_by_id(db, body["id"]) is None
    assert chat_service.get_messages_by_chat_id(db, body["id"]) == []
    assert chat_service.get_stream_ids_by_chat_id(db, body["id"]) == []


def test_delete_chat_rejections(client, db, make_user):
    owner, _ = make_user(email="owner@example.com")
    _, other_headers = make_user(email="other@example.com")
    chat_service.save_chat(db, "owned-chat", owner.id, "Mine")

    assert client.delete("/chat").status_code == 404
    assert client.delete("/chat", params={"id": "owned-chat"}).status_code == 401
    assert client.delete("/chat", params={"id": "owned-chat"}, headers=other_headers).status_code == 401
    assert client.delete("/chat", params={"id": "missing"}, headers=other_headers).status_code == 404
    assert chat_service.get_chat_by_id(db, "owned-chat") is not None


def test_chat_messages_visibility(client, db, make_user):
    owner, owner_headers = make_user(email="owner@example.com")
    _, other_headers = make_user(email="other@example.com")
    body = chat_body()
    client.post("/chat", json=body, headers=owner_headers)

    response = client.get(f"/chat/{body['id']}/messages", headers=owner_headers)
    assert response.status_code == 200
    assert [m["role"] for m in response.json()] == ["user", "assistant"]
    assert response.json()[0]["chatId"] == body["id"]

    assert client.get(f"/chat/{body['id']}/messages", headers=other_headers).status_code == 403

    response = client.patch(f"/chat/{body['id']}/visibility", json={"visibility": "public"}, headers=owner_headers)
    assert response.status_code == 200
    assert response.json()["visibility"] == "public"

    assert client.get(f"/chat/{body['id']}/messages", headers=other_headers).status_code == 200
    assert client.get(f"/chat/{body['id']}/messages").status_code == 200


def test_visibility_owner_only(client, db, make_user):
    owner, _ = make_user(email="owner@example.com")
    _, other_headers = make_user(email="other@example.com")
    chat_service.save_chat(db, "owned-chat", owner.id, "Mine")

    patch = {"visibility": "public"}
    assert client.patch("/chat/owned-chat/visibility", json=patch, headers=other_headers).status_code == 401
    assert client.patch("/chat/owned-chat/visibility", json=patch).status_code == 401
    assert client.patch("/chat/missing/visibility", json=patch, headers=other_headers).status_code == 404


def test_history_lists_own_chats(client, db, make_user):
    owner, owner_headers = make_user(email="owner@example.com")
    other, _ = make_user(email="other@example.com")
    chat_service.save_chat(db, "mine-1", owner.id, "First")
    chat_service.save_chat(db, "mine-2", owner.id, "Second")
    chat_service.save_chat(db, "theirs", other.id, "Theirs")

    response = client.get("/history", params={"page_size": 1}, headers=owner_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert len(data["chats"]) == 1
    assert data["hasMore"] is True

    assert client.get("/history").status_code == 401


def test_system_health_reports_database(client, monkeypatch):
    monkeypatch.setattr(system, "SessionLocal", TestSessionLocal)
    response = client.get("/system/health")
    assert response.status_code == 200
    data = response.json()
    assert data["database"] == "connected"
    assert data["service"] == "Infox Chat API"
    assert "model_provider" in data
