"""Tests for the messages REST endpoints."""
import uuid
from unittest.mock import ANY, patch

import duckdb
import pytest
from starlette.datastructures import UploadFile

from app.images.service import ImageStorageService
from app.messages.service import MessageService

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def alice(users):
    return users["alice"].id


@pytest.fixture
def bob(users):
    return users["bob"].id


class TestAuthentication:

    @pytest.mark.parametrize("path", ["/messages/contacts", "/messages/chats"])
    def test_missing_cookie_is_401(self, api_client, path):
        response = api_client.get(path)
        assert response.status_code == 401
        assert response.json()["detail"] == "Authentication token required"

    def test_bad_token_is_401(self, api_client):
        response = api_client.get("/messages/contacts", headers={"cookie": "jwt=garbage"})
        assert response.status_code == 401

    def test_send_requires_auth(self, api_client, bob):
        response = api_client.post("/messages/send", json={"receiverId": bob, "text": "hi"})
        assert response.status_code == 401


class TestContacts:

    def test_everyone_but_caller_sorted_by_name(self, api_client, users, alice, auth_for):
        response = api_client.get("/messages/contacts", headers=auth_for(alice))

        assert response.status_code == 200
        names = [c["fullname"] for c in response.json()["contacts"]]
        assert names == ["Bob Brown", "Carol Chen"]


class TestSend:

    def test_send_text_message(self, api_client, store, alice, bob, auth_for):
        response = api_client.post(
            "/messages/send", json={"receiverId": bob, "text": "  <b>hello</b> "}, headers=auth_for(alice),
        )

        assert response.status_code == 201
        message = response.json()["message"]
        assert message["text"] == "hello"
        assert message["senderId"] == alice
        assert message["receiverId"] == bob
        assert message["read"] is False
        assert message["image"] is None
        assert store.get_message(message["id"]) is not None

    def test_escaped_markup_is_stored_inert(self, api_client, store, alice, bob, auth_for):
        response = api_client.post(
            "/messages/send",
            json={"receiverId": bob, "text": "&lt;img src=x onerror=alert(1)&gt;"},
            headers=auth_for(alice),
        )

        assert response.status_code == 201
        stored = store.get_message(response.json()["message"]["id"])
        assert "<" not in stored.text
        assert ">" not in stored.text

    def test_markup_only_text_is_400(self, api_client, store, alice, bob, auth_for):
        response = api_client.post(
            "/messages/send", json={"receiverId": bob, "text": "<br>"}, headers=auth_for(alice),
        )
        assert response.status_code == 400
        assert store.count_messages() == 0

    def test_empty_text_is_rejected(self, api_client, alice, bob, auth_for):
        response = api_client.post(
            "/messages/send", json={"receiverId": bob, "text": ""}, headers=auth_for(alice),
        )
        assert response.status_code == 422

    def test_text_over_limit_is_rejected(self, api_client, alice, bob, auth_for):
        response = api_client.post(
            "/messages/send", json={"receiverId": bob, "text": "a" * 5001}, headers=auth_for(alice),
        )
        assert response.status_code == 422

    def test_malformed_receiver_is_rejected(self, api_client, alice, auth_for):
        response = api_client.post(
            "/messages/send", json={"receiverId": "nope", "text": "hi"}, headers=auth_for(alice),
        )
        assert response.status_code == 422

    def test_unknown_receiver_is_404(self, api_client, store, alice, auth_for):
        response = api_client.post(
            "/messages/send", json={"receiverId": str(uuid.uuid4()), "text": "hi"}, headers=auth_for(alice),
        )
        assert response.status_code == 404
        assert store.count_messages() == 0

    def test_store_failure_is_500_and_nothing_is_relayed(self, api_client, alice, bob, auth_for):
        """A failed write surfaces as 500 and never reaches the relay."""
        realtime = api_client.app.state.realtime
        with patch.object(MessageService, "create_message", side_effect=duckdb.Error("disk full")), \
                patch.object(realtime.delivery, "relay") as relay:
            response = api_client.post(
                "/messages/send", json={"receiverId": bob, "text": "hi"}, headers=auth_for(alice),
            )

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to send message"
        relay.assert_not_called()


class TestSendImage:

    def test_send_image_message(self, api_client, alice, bob, auth_for):
        response = api_client.post(
            "/messages/send-image",
            data={"receiverId": bob},
            files={"image": ("cat.png", PNG_BYTES, "image/png")},
            headers=auth_for(alice),
        )

        assert response.status_code == 201
        message = response.json()["message"]
        assert message["text"] is None
        assert message["image"].endswith(f"/images/{message['imagePublicId']}")

        served = api_client.get(f"/images/{message['imagePublicId']}")
        assert served.status_code == 200
        assert served.content == PNG_BYTES

    def test_wrong_type_is_400(self, api_client, store, alice, bob, auth_for):
        response = api_client.post(
            "/messages/send-image",
            data={"receiverId": bob},
            files={"image": ("doc.pdf", b"%PDF-1.4", "application/pdf")},
            headers=auth_for(alice),
        )
        assert response.status_code == 400
        assert store.count_messages() == 0

    def test_oversized_upload_is_400_without_full_read(self, api_client, store, alice, bob, auth_for, tmp_path):
        """Only one byte past the limit is read before the upload is refused."""
        ImageStorageService.reset_instance()
        ImageStorageService.get_instance(upload_dir=str(tmp_path / "small"), db_path=":memory:", max_size_bytes=1024)

        with patch.object(UploadFile, "read", autospec=True, side_effect=UploadFile.read) as read:
            response = api_client.post(
                "/messages/send-image",
                data={"receiverId": bob},
                files={"image": ("big.png", PNG_BYTES + b"\x00" * 4096, "image/png")},
                headers=auth_for(alice),
            )

        assert response.status_code == 400
        assert "less than" in response.json()["detail"]
        read.assert_awaited_with(ANY, 1025)
        assert store.count_messages() == 0

    def test_invalid_receiver_is_400(self, api_client, alice, auth_for):
        response = api_client.post(
            "/messages/send-image",
            data={"receiverId": "nope"},
            files={"image": ("cat.png", PNG_BYTES, "image/png")},
            headers=auth_for(alice),
        )
        assert response.status_code == 400

    def test_unknown_receiver_is_404(self, api_client, alice, auth_for):
        response = api_client.post(
            "/messages/send-image",
            data={"receiverId": str(uuid.uuid4())},
            files={"image": ("cat.png", PNG_BYTES, "image/png")},
            headers=auth_for(alice),
        )
        assert response.status_code == 404


class TestConversation:

    def test_pages_with_cursor(self, api_client, store, alice, bob, auth_for):
        """Walking nextCursor returns 50, 50, 20 messages without overlap."""
        for i in range(120):
            store.create_message(alice, bob, text=f"m{i}")

        first = api_client.get(f"/messages/{bob}", headers=auth_for(alice)).json()
        assert len(first["messages"]) == 50
        assert first["hasMore"] is True
        assert first["nextCursor"] == first["messages"][0]["createdAt"]
        assert first["messages"][-1]["text"] == "m119"
        assert first["user"] == {"id": bob, "fullname": "Bob Brown", "avatar": None}

        second = api_client.get(
            f"/messages/{bob}", params={"before": first["nextCursor"]}, headers=auth_for(alice),
        ).json()
        third = api_client.get(
            f"/messages/{bob}", params={"before": second["nextCursor"]}, headers=auth_for(alice),
        ).json()

        assert len(second["messages"]) == 50
        assert len(third["messages"]) == 20
        assert third["hasMore"] is False
        texts = [m["text"] for page in (third, second, first) for m in page["messages"]]
        assert texts == [f"m{i}" for i in range(120)]

    def test_limit_bounds(self, api_client, alice, bob, auth_for):
        assert api_client.get(f"/messages/{bob}?limit=0", headers=auth_for(alice)).status_code == 422
        assert api_client.get(f"/messages/{bob}?limit=101", headers=auth_for(alice)).status_code == 422

    def test_opening_conversation_marks_incoming_read(self, api_client, store, alice, bob, auth_for):
        """The first page marks the partner's messages to the caller as read."""
        incoming = store.create_message(bob, alice, text="unread")
        outgoing = store.create_message(alice, bob, text="mine")

        api_client.get(f"/messages/{bob}", headers=auth_for(alice))

        assert store.get_message(incoming.id).read is True
        assert store.get_message(outgoing.id).read is False

    def test_older_pages_do_not_mark_read(self, api_client, store, alice, bob, auth_for):
        message = store.create_message(bob, alice, text="unread")
        cursor = "2999-01-01T00:00:00Z"

        page = api_client.get(f"/messages/{bob}", params={"before": cursor}, headers=auth_for(alice)).json()

        assert [m["id"] for m in page["messages"]] == [message.id]
        assert store.get_message(message.id).read is False

    def test_invalid_user_id_is_400(self, api_client, alice, auth_for):
        assert api_client.get("/messages/not-a-uuid", headers=auth_for(alice)).status_code == 400

    def test_unknown_user_is_404(self, api_client, alice, auth_for):
        response = api_client.get(f"/messages/{uuid.uuid4()}", headers=auth_for(alice))
        assert response.status_code == 404


class TestChats:

    def test_chat_list(self, api_client, store, users, alice, bob, auth_for):
        carol = users["carol"].id
        store.create_message(bob, alice, text="hi alice")
        store.create_message(carol, alice, text="hey")
        store.create_message(carol, alice, text="you there?")

        chats = api_client.get("/messages/chats", headers=auth_for(alice)).json()["chats"]

        assert [c["user"]["fullname"] for c in chats] == ["Carol Chen", "Bob Brown"]
        assert chats[0]["lastMessage"]["text"] == "you there?"
        assert chats[0]["unreadCount"] == 2
        assert chats[1]["unreadCount"] == 1

    def test_no_chats(self, api_client, alice, auth_for):
        assert api_client.get("/messages/chats", headers=auth_for(alice)).json() == {"chats": []}


def test_health(api_client):
    assert api_client.get("/health").json() == {"status": "ok"}


def test_store_is_shared_with_app(api_client):
    """The lifespan reuses the in-memory store set up for tests."""
    assert api_client.app.state.realtime.read_receipts.store is MessageService.get_instance()
