from __future__ import annotations

import pytest
from bson import ObjectId

from lomu.db import get_db


@pytest.mark.asyncio
async def test_first_message_creates_one_pending_thread(api_client, make_user) -> None:
    alice = await make_user("alice")

    resp = await api_client.post("/api/chatAdmin/send", json={"message": "  hello  "}, headers=alice["headers"])
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "pending"
    assert body["message"]["message"] == "hello"
    assert body["message"]["sender"] == alice["id"]
    assert body["message"]["senderName"] == "alice"
    assert body["message"]["read"] is False

    threads = await get_db()["userchats"].find({"userId": ObjectId(alice["id"])}).to_list(length=10)
    assert len(threads) == 1
    assert str(threads[0]["_id"]) == body["threadId"]
    assert len(threads[0]["messages"]) == 1
    assert threads[0]["lastActivity"] == body["message"]["timestamp"]


@pytest.mark.asyncio
async def test_client_payload_with_own_user_id_and_empty_body(api_client, make_user) -> None:
    alice = await make_user("alice")
    ok = await api_client.post(
        "/api/chatAdmin/send", json={"userId": alice["id"], "message": "hi"}, headers=alice["headers"]
    )
    assert ok.status_code == 200

    empty = await api_client.post("/api/chatAdmin/send", json={"message": "   "}, headers=alice["headers"])
    assert empty.status_code == 400
    assert empty.json()["message"] == "Message cannot be empty"


@pytest.mark.asyncio
async def test_fetch_thread_validates_id_and_creates_lazily(api_client, make_user) -> None:
    alice = await make_user("alice")
    bob = await make_user("bob")

    malformed = await api_client.get("/api/chatAdmin/user/not-an-id", headers=alice["headers"])
    assert malformed.status_code == 400
    assert malformed.json()["error"] == "ValidationError"

    fresh = await api_client.get(f"/api/chatAdmin/user/{alice['id']}", headers=alice["headers"])
    assert fresh.status_code == 200
    assert fresh.json()["status"] == "pending"
    assert fresh.json()["messages"] == []
    assert fresh.json()["username"] == "alice"

    foreign = await api_client.get(f"/api/chatAdmin/user/{alice['id']}", headers=bob["headers"])
    assert foreign.status_code == 403
    foreign_send = await api_client.post(
        "/api/chatAdmin/send", json={"userId": alice["id"], "message": "hey"}, headers=bob["headers"]
    )
    assert foreign_send.status_code == 403


@pytest.mark.asyncio
async def test_admin_thread_lifecycle(api_client, make_user) -> None:
    admin = await make_user("admin")
    alice = await make_user("alice")

    sent = await api_client.post("/api/chatAdmin/send", json={"message": "help"}, headers=alice["headers"])
    thread_id = sent.json()["threadId"]
    message_id = sent.json()["message"]["_id"]

    forbidden = await api_client.get("/api/chatAdmin/threads", headers=alice["headers"])
    assert forbidden.status_code == 403

    inbox = await api_client.get("/api/chatAdmin/threads", params={"status": "pending"}, headers=admin["headers"])
    assert inbox.status_code == 200
    assert [t["_id"] for t in inbox.json()] == [thread_id]
    assert inbox.json()[0]["username"] == "alice"
    assert inbox.json()[0]["unreadCount"] == 1

    assigned = await api_client.post(f"/api/chatAdmin/{thread_id}/assign", headers=admin["headers"])
    assert assigned.status_code == 200
    assert assigned.json()["status"] == "open"
    assert assigned.json()["adminId"] == admin["id"]

    replied = await api_client.post(
        f"/api/chatAdmin/{thread_id}/reply",
        json={"message": "on it", "messageId": message_id},
        headers=admin["headers"],
    )
    assert replied.status_code == 200
    reply = replied.json()["messages"][0]["reply"]
    assert reply["message"] == "on it"
    assert reply["senderName"] == "admin"

    appended = await api_client.post(
        f"/api/chatAdmin/{thread_id}/reply", json={"message": "anything else?"}, headers=admin["headers"]
    )
    assert [m["message"] for m in appended.json()["messages"]] == ["help", "anything else?"]

    unknown = await api_client.post(
        f"/api/chatAdmin/{thread_id}/reply",
        json={"message": "x", "messageId": str(ObjectId())},
        headers=admin["headers"],
    )
    assert unknown.status_code == 404

    bad_status = await api_client.patch(
        f"/api/chatAdmin/{thread_id}/status", json={"status": "pending"}, headers=admin["headers"]
    )
    assert bad_status.status_code == 400
    closed = await api_client.patch(
        f"/api/chatAdmin/{thread_id}/status", json={"status": "closed"}, headers=admin["headers"]
    )
    assert closed.json()["status"] == "closed"

    reopened = await api_client.post("/api/chatAdmin/send", json={"message": "again"}, headers=alice["headers"])
    assert reopened.json()["status"] == "pending"


@pytest.mark.asyncio
async def test_mark_read_only_touches_other_side(api_client, make_user) -> None:
    admin = await make_user("admin")
    alice = await make_user("alice")

    sent = await api_client.post("/api/chatAdmin/send", json={"message": "one"}, headers=alice["headers"])
    thread_id = sent.json()["threadId"]
    await api_client.post(f"/api/chatAdmin/{thread_id}/reply", json={"message": "two"}, headers=admin["headers"])

    read = await api_client.patch(f"/api/chatAdmin/{thread_id}/read", headers=alice["headers"])
    assert read.status_code == 200
    flags = {m["message"]: m["read"] for m in read.json()["messages"]}
    assert flags == {"one": False, "two": True}

    read_admin = await api_client.patch(f"/api/chatAdmin/{thread_id}/read", headers=admin["headers"])
    assert all(m["read"] for m in read_admin.json()["messages"])


@pytest.mark.asyncio
async def test_admin_can_open_any_thread(api_client, make_user) -> None:
    admin = await make_user("admin")
    alice = await make_user("alice")
    await api_client.post("/api/chatAdmin/send", json={"message": "hello"}, headers=alice["headers"])

    resp = await api_client.get(f"/api/chatAdmin/user/{alice['id']}", headers=admin["headers"])
    assert resp.status_code == 200
    assert resp.json()["messages"][0]["senderName"] == "alice"

    missing = await api_client.get(f"/api/chatAdmin/user/{ObjectId()}", headers=admin["headers"])
    assert missing.status_code == 404
