"""Read-only query layer over the Messages database (chat.db).

The database belongs to Messages.app, so the engine is opened with a `mode=ro` SQLite
URI and `PRAGMA query_only` on every connection. Field extraction only: nothing here
validates Apple's schema beyond the columns selected.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, List, Optional

from sqlalchemy import create_engine, event, text, bindparam
from sqlalchemy.engine import Engine, URL
from sqlalchemy.exc import OperationalError

logger = logging.getLogger("imessage_mcp.message_store")

APPLE_EPOCH = datetime(2001, 1, 1, tzinfo=timezone.utc)


class MessageStoreError(RuntimeError):
    pass


@dataclass
class Attachment:
    guid: str
    filename: Optional[str]
    mime_type: Optional[str]
    total_bytes: Optional[int]
    transfer_name: Optional[str]


@dataclass
class Message:
    guid: str
    text: str
    sender: str
    date: str
    is_from_me: bool
    reply_to_guid: Optional[str]
    is_read: bool
    date_read: Optional[str]
    service: Optional[str]
    attachments: Optional[List[Attachment]] = field(default=None)


@dataclass
class Chat:
    chat_id: int
    chat_identifier: Optional[str]
    display_name: Optional[str]


@dataclass
class Contact:
    handle_id: int
    id: str  # phone or email
    service: Optional[str]


_MESSAGE_COLUMNS = """
    m.guid,
    m.text,
    h.id AS sender,
    m.date / 1000000000 AS date,
    m.is_from_me,
    m.reply_to_guid,
    m.is_read,
    m.date_read / 1000000000 AS date_read,
    m.service
"""

RECENT_SQL = text(f"""
    SELECT {_MESSAGE_COLUMNS}
    FROM message m
    LEFT JOIN handle h ON m.handle_id = h.ROWID
    WHERE m.text IS NOT NULL
       OR EXISTS (SELECT 1 FROM message_attachment_join maj WHERE maj.message_id = m.ROWID)
    ORDER BY m.date DESC
    LIMIT :limit
""")

SEARCH_SQL = text(f"""
    SELECT {_MESSAGE_COLUMNS}
    FROM message m
    LEFT JOIN handle h ON m.handle_id = h.ROWID
    WHERE m.text LIKE :pattern
    ORDER BY m.date DESC
    LIMIT :limit
""")

CONTACT_SQL = text(f"""
    SELECT {_MESSAGE_COLUMNS}
    FROM message m
    JOIN handle h ON m.handle_id = h.ROWID
    WHERE h.id = :handle
    ORDER BY m.date DESC
    LIMIT :limit
""")

ATTACHMENTS_SQL = text("""
    SELECT
        m.guid AS message_guid,
        a.guid AS attachment_guid,
        a.filename,
        a.mime_type,
        a.total_bytes,
        a.transfer_name
    FROM message m
    JOIN message_attachment_join maj ON m.ROWID = maj.message_id
    JOIN attachment a ON maj.attachment_id = a.ROWID
    WHERE m.guid IN :guids
""").bindparams(bindparam("guids", expanding=True))

ATTACHMENT_PATH_SQL = text("SELECT filename FROM attachment WHERE guid = :guid")
CHATS_SQL = text("SELECT ROWID AS chat_id, chat_identifier, display_name FROM chat")
CONTACTS_SQL = text("SELECT ROWID AS handle_id, id, service FROM handle WHERE id LIKE :pattern")


def apple_time_to_iso(seconds: int | float) -> str:
    """Seconds since 2001-01-01 UTC (Mac absolute time) -> '2023-03-14T09:26:40.000Z'."""
    dt = APPLE_EPOCH + timedelta(seconds=seconds)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _readonly_url(path: str) -> URL:
    return URL.create(
        "sqlite",
        database=f"file:{Path(path).expanduser()}",
        query={"mode": "ro", "uri": "true"},
    )


class MessageStore:
    def __init__(self, db_path: str, *, open_retries: int = 3, busy_timeout: float = 5.0):
        self.db_path = db_path
        self.engine = self._open_with_retry(open_retries, busy_timeout)

    def _open_with_retry(self, retries: int, busy_timeout: float) -> Engine:
        last_error: Exception | None = None
        for attempt in range(retries):
            engine = create_engine(
                _readonly_url(self.db_path),
                connect_args={"timeout": busy_timeout, "check_same_thread": False},
            )
            event.listen(engine, "connect", _set_query_only)
            try:
                # fail fast: missing file or missing Full Disk Access surfaces here
                with engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
                return engine
            except OperationalError as e:
                engine.dispose()
                last_error = e
                if "database is locked" in str(e) and attempt < retries - 1:
                    delay = 0.5 * (attempt + 1)
                    logger.warning("chat.db locked; retrying open in %.1fs", delay)
                    time.sleep(delay)
                    continue
                break
        raise MessageStoreError(f"Unable to open {self.db_path}: {last_error}") from last_error

    def _fetch(self, stmt, **params) -> list[Any]:
        with self.engine.connect() as conn:
            return list(conn.execute(stmt, params).mappings())

    def _rows_to_messages(self, rows, *, sender_fallback: bool = True) -> List[Message]:
        out: List[Message] = []
        for row in rows:
            sender = row["sender"]
            if not sender and sender_fallback:
                sender = "me" if row["is_from_me"] else "unknown"
            out.append(Message(
                guid=row["guid"],
                text=row["text"] or "",
                sender=sender,
                date=apple_time_to_iso(row["date"] or 0),
                is_from_me=bool(row["is_from_me"]),
                reply_to_guid=row["reply_to_guid"],
                is_read=bool(row["is_read"]),
                date_read=apple_time_to_iso(row["date_read"]) if row["date_read"] else None,
                service=row["service"],
            ))
        return self._enrich_with_attachments(out)

    def _enrich_with_attachments(self, messages: List[Message]) -> List[Message]:
        if not messages:
            return messages
        rows = self._fetch(ATTACHMENTS_SQL, guids=[m.guid for m in messages])
        by_message: dict[str, List[Attachment]] = {}
        for row in rows:
            by_message.setdefault(row["message_guid"], []).append(Attachment(
                guid=row["attachment_guid"],
                filename=row["filename"],
                mime_type=row["mime_type"],
                total_bytes=row["total_bytes"],
                transfer_name=row["transfer_name"],
            ))
        for m in messages:
            attachments = by_message.get(m.guid)
            if not attachments:
                continue
            placeholders = " ".join(
                f"[Attachment: {a.mime_type or 'unknown'}, name: {a.transfer_name or 'unknown'}]"
                for a in attachments
            )
            m.text = f"{m.text} {placeholders}".strip()
            m.attachments = attachments
        return messages

    def get_recent_messages(self, limit: int = 20) -> List[Message]:
        return self._rows_to_messages(self._fetch(RECENT_SQL, limit=limit))

    def search_messages(self, search_text: str, limit: int = 20) -> List[Message]:
        return self._rows_to_messages(self._fetch(SEARCH_SQL, pattern=f"%{search_text}%", limit=limit))

    def get_messages_from_contact(self, contact_handle: str, limit: int = 20) -> List[Message]:
        rows = self._fetch(CONTACT_SQL, handle=contact_handle, limit=limit)
        return self._rows_to_messages(rows, sender_fallback=False)

    def list_chats(self) -> List[Chat]:
        return [Chat(**dict(r)) for r in self._fetch(CHATS_SQL)]

    def search_contacts(self, query: str) -> List[Contact]:
        return [Contact(**dict(r)) for r in self._fetch(CONTACTS_SQL, pattern=f"%{query}%")]

    def get_attachment_path(self, guid: str) -> Optional[str]:
        rows = self._fetch(ATTACHMENT_PATH_SQL, guid=guid)
        if not rows or not rows[0]["filename"]:
            return None
        file_path = rows[0]["filename"]
        if file_path.startswith("~/"):
            file_path = str(Path.home() / file_path[2:])
        return file_path

    def close(self) -> None:
        self.engine.dispose()


def _set_query_only(dbapi_conn, connection_record):  # noqa: ARG001
    cur = dbapi_conn.cursor()
    try:
        cur.execute("PRAGMA query_only = 1")
    finally:
        cur.close()


__all__ = [
    "MessageStore", "MessageStoreError", "Message", "Attachment", "Chat", "Contact",
    "apple_time_to_iso",
]
