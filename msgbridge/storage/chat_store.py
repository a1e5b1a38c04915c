"""Read-only access to the Messages chat.db."""

from __future__ import annotations

import sqlite3
from contextlib import closing
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator

from msgbridge.storage.models import AttachmentMeta, Chat, ChatInfo, Message, MessageFilter, Reaction
from msgbridge.utils.exceptions import StoreUnavailableError

APPLE_EPOCH = datetime(2001, 1, 1, tzinfo=timezone.utc)

# associated_message_type values used for tapbacks (2000-2005 add, 3000-3005 remove)
REACTION_TYPES = {
    0: "love",
    1: "thumbsup",
    2: "thumbsdown",
    3: "haha",
    4: "emphasis",
    5: "question",
}


def apple_date(value: int | float | None) -> datetime | None:
    """Convert a chat.db date (seconds or nanoseconds since 2001-01-01) to UTC."""
    if not value:
        return None
    seconds = value / 1_000_000_000 if value > 1_000_000_000_000 else value
    return APPLE_EPOCH + timedelta(seconds=seconds)


def decode_attributed_body(blob: bytes | None) -> str:
    """Pull the plain string out of a typedstream attributedBody blob."""
    if not blob:
        return ""
    idx = blob.find(b"NSString")
    if idx < 0:
        return ""
    data = blob[idx + len(b"NSString") + 5:]
    if not data:
        return ""
    length, start = data[0], 1
    if length == 0x81:
        length, start = int.from_bytes(data[1:3], "little"), 3
    elif length == 0x82:
        length, start = int.from_bytes(data[1:4], "little"), 4
    return data[start:start + length].decode("utf-8", errors="replace")


_NOT_REACTION = "(m.associated_message_type IS NULL OR m.associated_message_type < 2000 OR m.associated_message_type > 3999)"


class ChatStore:
    """Query helper over chat.db; every call opens its own read-only connection."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path).expanduser()
        self._has_thread_column: bool | None = None

    def _connect(self) -> sqlite3.Connection:
        path = self.db_path.resolve()
        if not path.exists():
            raise StoreUnavailableError(str(path), "file not found")
        try:
            conn = sqlite3.connect(f"{path.as_uri()}?mode=ro", uri=True, check_same_thread=False)
        except sqlite3.Error as exc:
            raise StoreUnavailableError(str(path), str(exc)) from exc
        conn.row_factory = sqlite3.Row
        return conn

    def _reply_column(self, conn: sqlite3.Connection) -> str:
        if self._has_thread_column is None:
            columns = {row["name"] for row in conn.execute("PRAGMA table_info(message)")}
            self._has_thread_column = "thread_originator_guid" in columns
        return "m.thread_originator_guid" if self._has_thread_column else "NULL"

    def list_chats(self, limit: int = 20) -> list[Chat]:
        sql = """
            SELECT c.ROWID AS id,
                   c.chat_identifier AS identifier,
                   IFNULL(NULLIF(c.display_name, ''), c.chat_identifier) AS name,
                   IFNULL(c.service_name, '') AS service,
                   MAX(m.date) AS last_date
            FROM chat c
            JOIN chat_message_join cmj ON cmj.chat_id = c.ROWID
            JOIN message m ON m.ROWID = cmj.message_id
            GROUP BY c.ROWID
            ORDER BY last_date DESC
            LIMIT ?
        """
        with closing(self._connect()) as conn:
            rows = conn.execute(sql, (max(limit, 1),)).fetchall()
        return [
            Chat(
                id=row["id"],
                identifier=row["identifier"] or "",
                name=row["name"] or "",
                service=row["service"],
                last_message_at=apple_date(row["last_date"]),
            )
            for row in rows
        ]

    def chat_info(self, chat_id: int) -> ChatInfo | None:
        sql = """
            SELECT ROWID AS id, IFNULL(chat_identifier, '') AS identifier, IFNULL(guid, '') AS guid,
                   IFNULL(display_name, '') AS name, IFNULL(service_name, '') AS service
            FROM chat WHERE ROWID = ?
        """
        with closing(self._connect()) as conn:
            row = conn.execute(sql, (chat_id,)).fetchone()
        if row is None:
            return None
        return ChatInfo(
            id=row["id"],
            identifier=row["identifier"],
            guid=row["guid"],
            name=row["name"],
            service=row["service"],
        )

    def participants(self, chat_id: int) -> list[str]:
        sql = """
            SELECT DISTINCT h.id AS handle
            FROM chat_handle_join chj
            JOIN handle h ON h.ROWID = chj.handle_id
            WHERE chj.chat_id = ?
            ORDER BY h.id
        """
        with closing(self._connect()) as conn:
            return [row["handle"] for row in conn.execute(sql, (chat_id,)) if row["handle"]]

    def _message_sql(self, reply_column: str, where: str, order: str) -> str:
        return f"""
            SELECT m.ROWID AS rowid, cmj.chat_id AS chat_id, IFNULL(m.guid, '') AS guid,
                   IFNULL(h.id, '') AS sender, m.is_from_me AS is_from_me, m.text AS text,
                   m.attributedBody AS body, m.date AS date, IFNULL(m.service, '') AS service,
                   {reply_column} AS reply_to_guid, m.cache_has_attachments AS has_attachments
            FROM message m
            JOIN chat_message_join cmj ON cmj.message_id = m.ROWID
            LEFT JOIN handle h ON h.ROWID = m.handle_id
            WHERE {where} AND {_NOT_REACTION}
            ORDER BY {order}
        """

    def messages(self, chat_id: int, limit: int = 50, message_filter: MessageFilter | None = None) -> list[Message]:
        """Newest-first history of one chat, filtered, at most `limit` rows."""
        limit = max(limit, 1)
        result: list[Message] = []
        with closing(self._connect()) as conn:
            sql = self._message_sql(self._reply_column(conn), "cmj.chat_id = ?", "m.date DESC, m.ROWID DESC")
            for message in self._iter_rows(conn.execute(sql, (chat_id,))):
                if message_filter is not None and not message_filter.allows(message):
                    continue
                result.append(message)
                if len(result) >= limit:
                    break
        return result

    def messages_after(self, rowid: int, chat_id: int | None = None, limit: int = 100) -> list[Message]:
        """Messages with ROWID greater than `rowid`, oldest first."""
        where = "m.ROWID > ?"
        args: list[int] = [rowid]
        if chat_id is not None:
            where += " AND cmj.chat_id = ?"
            args.append(chat_id)
        with closing(self._connect()) as conn:
            sql = self._message_sql(self._reply_column(conn), where, "m.ROWID ASC") + " LIMIT ?"
            args.append(max(limit, 1))
            return list(self._iter_rows(conn.execute(sql, args)))

    def max_rowid(self) -> int:
        with closing(self._connect()) as conn:
            row = conn.execute("SELECT IFNULL(MAX(ROWID), 0) AS max_rowid FROM message").fetchone()
        return int(row["max_rowid"])

    def attachments(self, message_rowid: int) -> list[AttachmentMeta]:
        sql = """
            SELECT IFNULL(a.filename, '') AS filename, IFNULL(a.transfer_name, '') AS transfer_name,
                   IFNULL(a.uti, '') AS uti, IFNULL(a.mime_type, '') AS mime_type,
                   IFNULL(a.total_bytes, 0) AS total_bytes, IFNULL(a.is_sticker, 0) AS is_sticker
            FROM message_attachment_join maj
            JOIN attachment a ON a.ROWID = maj.attachment_id
            WHERE maj.message_id = ?
            ORDER BY a.ROWID
        """
        with closing(self._connect()) as conn:
            rows = conn.execute(sql, (message_rowid,)).fetchall()
        result = []
        for row in rows:
            original = row["filename"]
            resolved = str(Path(original).expanduser()) if original else ""
            result.append(
                AttachmentMeta(
                    filename=Path(original).name if original else "",
                    transfer_name=row["transfer_name"],
                    uti=row["uti"],
                    mime_type=row["mime_type"],
                    total_bytes=int(row["total_bytes"]),
                    is_sticker=bool(row["is_sticker"]),
                    original_path=resolved,
                    missing=not resolved or not Path(resolved).exists(),
                )
            )
        return result

    def reactions(self, message_rowid: int) -> list[Reaction]:
        with closing(self._connect()) as conn:
            target = conn.execute("SELECT guid FROM message WHERE ROWID = ?", (message_rowid,)).fetchone()
            if target is None or not target["guid"]:
                return []
            sql = """
                SELECT m.ROWID AS rowid, m.associated_message_type AS type, IFNULL(h.id, '') AS sender,
                       m.is_from_me AS is_from_me, m.date AS date
                FROM message m
                LEFT JOIN handle h ON h.ROWID = m.handle_id
                WHERE m.associated_message_guid LIKE ?
                  AND m.associated_message_type BETWEEN 2000 AND 3005
                ORDER BY m.date, m.ROWID
            """
            rows = conn.execute(sql, (f"%{target['guid']}",)).fetchall()
        result = []
        for row in rows:
            code = int(row["type"])
            name = REACTION_TYPES.get(code % 1000)
            if name is None:
                continue
            result.append(
                Reaction(
                    rowid=row["rowid"],
                    type=name,
                    sender=row["sender"],
                    is_from_me=bool(row["is_from_me"]),
                    date=apple_date(row["date"]),
                    removed=code >= 3000,
                )
            )
        return result

    @staticmethod
    def _iter_rows(cursor: sqlite3.Cursor) -> Iterator[Message]:
        for row in cursor:
            text = row["text"]
            if not text:
                text = decode_attributed_body(row["body"])
            yield Message(
                rowid=row["rowid"],
                chat_id=row["chat_id"],
                guid=row["guid"],
                sender=row["sender"],
                is_from_me=bool(row["is_from_me"]),
                text=text or "",
                date=apple_date(row["date"]),
                service=row["service"],
                reply_to_guid=row["reply_to_guid"] or None,
                has_attachments=bool(row["has_attachments"]),
            )
