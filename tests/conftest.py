"""Shared pytest fixtures."""

import sqlite3

import pytest


CHAT_DB_SCHEMA = """
CREATE TABLE chat (
    ROWID INTEGER PRIMARY KEY,
    guid TEXT,
    chat_identifier TEXT,
    display_name TEXT,
    service_name TEXT
);
CREATE TABLE handle (ROWID INTEGER PRIMARY KEY, id TEXT);
CREATE TABLE chat_handle_join (chat_id INTEGER, handle_id INTEGER);
CREATE TABLE message (
    ROWID INTEGER PRIMARY KEY,
    guid TEXT,
    text TEXT,
    attributedBody BLOB,
    handle_id INTEGER,
    is_from_me INTEGER DEFAULT 0,
    date INTEGER,
    service TEXT,
    thread_originator_guid TEXT,
    cache_has_attachments INTEGER DEFAULT 0,
    associated_message_type INTEGER DEFAULT 0,
    associated_message_guid TEXT
);
CREATE TABLE chat_message_join (chat_id INTEGER, message_id INTEGER);
CREATE TABLE attachment (
    ROWID INTEGER PRIMARY KEY,
    filename TEXT,
    transfer_name TEXT,
    uti TEXT,
    mime_type TEXT,
    total_bytes INTEGER,
    is_sticker INTEGER DEFAULT 0
);
CREATE TABLE message_attachment_join (message_id INTEGER, attachment_id INTEGER);
"""

# 2026-01-01T00:00:00Z in seconds since 2001-01-01, as nanoseconds
BASE_DATE_NS = 788_918_400 * 1_000_000_000


class ChatDb:
    """Writable fixture database shaped like the Messages chat.db."""

    def __init__(self, path):
        self.path = path
        self.conn = sqlite3.connect(path)
        self.conn.executescript(CHAT_DB_SCHEMA)
        self.conn.commit()

    def add_chat(self, rowid, identifier, *, guid=None, name="", service="iMessage", handles=()):
        self.conn.execute(
            "INSERT INTO chat (ROWID, guid, chat_identifier, display_name, service_name) VALUES (?, ?, ?, ?, ?)",
            (rowid, guid or f"{service};-;{identifier}", identifier, name, service),
        )
        for handle in handles:
            handle_id = self.handle_id(handle)
            self.conn.execute("INSERT INTO chat_handle_join (chat_id, handle_id) VALUES (?, ?)", (rowid, handle_id))
        self.conn.commit()

    def handle_id(self, handle):
        row = self.conn.execute("SELECT ROWID FROM handle WHERE id = ?", (handle,)).fetchone()
        if row:
            return row[0]
        return self.conn.execute("INSERT INTO handle (id) VALUES (?)", (handle,)).lastrowid

    def add_message(
        self,
        rowid,
        chat_id,
        text,
        *,
        sender=None,
        is_from_me=False,
        minutes=0,
        guid=None,
        reaction_type=0,
        reaction_to=None,
        body=None,
        reply_to=None,
    ):
        handle_id = self.handle_id(sender) if sender else 0
        self.conn.execute(
            """
            INSERT INTO message (ROWID, guid, text, attributedBody, handle_id, is_from_me, date, service,
                                 thread_originator_guid, associated_message_type, associated_message_guid)
            VALUES (?, ?, ?, ?, ?, ?, ?, 'iMessage', ?, ?, ?)
            """,
            (
                rowid,
                guid or f"GUID-{rowid}",
                text,
                body,
                handle_id,
                int(is_from_me),
                BASE_DATE_NS + minutes * 60 * 1_000_000_000,
                reply_to,
                reaction_type,
                f"p:0/{reaction_to}" if reaction_to else None,
            ),
        )
        self.conn.execute("INSERT INTO chat_message_join (chat_id, message_id) VALUES (?, ?)", (chat_id, rowid))
        self.conn.commit()

    def add_attachment(self, message_rowid, rowid, filename, *, transfer_name="", mime_type="image/jpeg"):
        self.conn.execute(
            "INSERT INTO attachment (ROWID, filename, transfer_name, uti, mime_type, total_bytes) VALUES (?, ?, ?, ?, ?, ?)",
            (rowid, filename, transfer_name, "public.jpeg", mime_type, 1024),
        )
        self.conn.execute(
            "INSERT INTO message_attachment_join (message_id, attachment_id) VALUES (?, ?)", (message_rowid, rowid)
        )
        self.conn.execute("UPDATE message SET cache_has_attachments = 1 WHERE ROWID = ?", (message_rowid,))
        self.conn.commit()

    def close(self):
        self.conn.close()


@pytest.fixture
def chat_db(tmp_path):
    """A small chat.db: a direct chat (1) and a group chat (2)."""
    db = ChatDb(tmp_path / "chat.db")
    db.add_chat(1, "+15551234567", handles=["+15551234567"])
    db.add_chat(2, "chat900", guid="iMessage;+;chat900", name="Team", handles=["+15551234567", "friend@example.com"])
    db.add_message(1, 1, "hi there", sender="+15551234567", minutes=0)
    db.add_message(2, 1, "hello back", is_from_me=True, minutes=1)
    db.add_message(3, 2, "group hello", sender="friend@example.com", minutes=2)
    db.add_message(4, 1, None, sender="+15551234567", minutes=3, reaction_type=2000, reaction_to="GUID-2")
    db.add_message(5, 1, "latest", sender="+15551234567", minutes=4, reply_to="GUID-1")
    yield db
    db.close()
