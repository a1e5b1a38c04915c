from datetime import datetime, timezone

import pytest

from msgbridge.storage.chat_cache import ChatCache
from msgbridge.storage.chat_store import ChatStore, apple_date, decode_attributed_body
from msgbridge.storage.models import MessageFilter
from msgbridge.storage.payloads import build_message_payload, chat_payload
from msgbridge.utils.exceptions import StoreUnavailableError, ValidationError


def test_apple_date_accepts_seconds_and_nanoseconds():
    expected = datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert apple_date(788_918_400) == expected
    assert apple_date(788_918_400 * 1_000_000_000) == expected
    assert apple_date(0) is None
    assert apple_date(None) is None


def test_decode_attributed_body():
    blob = b"\x04\x0bstreamtyped\x81\xe8\x03\x84\x01@\x84\x84\x84\x12NSAttributedString\x00\x84\x84\x08NSObject\x00\x85\x92\x84\x84\x84\x08NSString\x01\x94\x84\x01+\x05hello\x86"
    assert decode_attributed_body(blob) == "hello"
    assert decode_attributed_body(None) == ""
    assert decode_attributed_body(b"no string here") == ""


def test_missing_database_is_unavailable(tmp_path):
    with pytest.raises(StoreUnavailableError):
        ChatStore(tmp_path / "missing.db").list_chats()


def test_list_chats_orders_by_latest_message(chat_db):
    chats = ChatStore(chat_db.path).list_chats(limit=10)
    assert [c.id for c in chats] == [1, 2]
    assert chats[1].name == "Team"
    assert chats[0].last_message_at == datetime(2026, 1, 1, 0, 4, tzinfo=timezone.utc)
    assert len(ChatStore(chat_db.path).list_chats(limit=0)) == 1


def test_messages_are_newest_first_without_reactions(chat_db):
    store = ChatStore(chat_db.path)
    messages = store.messages(1, limit=10)
    assert [m.rowid for m in messages] == [5, 2, 1]
    assert messages[0].reply_to_guid == "GUID-1"
    assert messages[1].is_from_me is True
    assert messages[1].sender == ""
    assert [m.rowid for m in store.messages(1, limit=1)] == [5]


def test_messages_filter_by_participant_and_window(chat_db):
    store = ChatStore(chat_db.path)
    only_them = store.messages(1, limit=10, message_filter=MessageFilter(participants=["+15551234567"]))
    assert [m.rowid for m in only_them] == [5, 1]
    window = MessageFilter.from_iso(start="2026-01-01T00:01:00Z", end="2026-01-01T00:04:00Z")
    assert [m.rowid for m in store.messages(1, limit=10, message_filter=window)] == [2]


def test_invalid_filter_date_is_validation_error():
    with pytest.raises(ValidationError):
        MessageFilter.from_iso(start="yesterday")


def test_messages_after_is_ascending_and_scoped(chat_db):
    store = ChatStore(chat_db.path)
    assert store.max_rowid() == 5
    assert [m.rowid for m in store.messages_after(1)] == [2, 3, 5]
    assert [m.rowid for m in store.messages_after(1, chat_id=1)] == [2, 5]
    assert [m.rowid for m in store.messages_after(0, limit=2)] == [1, 2]


def test_attributed_body_fallback(chat_db):
    blob = b"\x84\x84\x84\x08NSString\x01\x94\x84\x01+\x07from db\x86"
    chat_db.add_message(6, 1, None, sender="+15551234567", minutes=5, body=blob)
    assert ChatStore(chat_db.path).messages(1, limit=1)[0].text == "from db"


def test_reactions_and_attachments(chat_db, tmp_path):
    image = tmp_path / "photo.jpg"
    image.write_bytes(b"\xff\xd8")
    chat_db.add_attachment(5, 1, str(image), transfer_name="photo.jpg")
    chat_db.add_attachment(5, 2, "~/nope/missing.png", mime_type="image/png")
    store = ChatStore(chat_db.path)

    reactions = store.reactions(2)
    assert [(r.type, r.removed, r.sender) for r in reactions] == [("love", False, "+15551234567")]

    attachments = store.attachments(5)
    assert [a.filename for a in attachments] == ["photo.jpg", "missing.png"]
    assert attachments[0].missing is False
    assert attachments[1].missing is True
    assert attachments[1].display_name == "missing.png"


def test_participants_and_cache(chat_db):
    store = ChatStore(chat_db.path)
    assert store.participants(2) == ["+15551234567", "friend@example.com"]
    cache = ChatCache(store)
    info = cache.info(2)
    assert info.guid == "iMessage;+;chat900"
    assert cache.info(2) is info
    assert cache.info(99) is None


def test_payloads(chat_db):
    store = ChatStore(chat_db.path)
    cache = ChatCache(store)
    chat = store.list_chats(limit=10)[1]
    summary = chat_payload(chat, cache.info(chat.id), cache.participants(chat.id))
    assert summary["is_group"] is True
    assert summary["guid"] == "iMessage;+;chat900"

    message = store.messages(1, limit=1)[0]
    payload = build_message_payload(store, cache, message, include_attachments=True)
    assert payload["chat_identifier"] == "+15551234567"
    assert payload["created_at"] == "2026-01-01T00:04:00.000Z"
    assert payload["attachments"] == []
    assert payload["is_group"] is False
