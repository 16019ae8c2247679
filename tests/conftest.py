"""Shared pytest fixtures.

No Messages.app is touched: the AppleScript mechanism is replaced by `FakeRunner`,
backoff sleeps are recorded instead of awaited, and chat.db is a throwaway SQLite
file built in `tmp_path`.
"""
from __future__ import annotations

import pytest
from typing import Callable, List

from sqlalchemy import create_engine, text

from imessage_mcp.core.settings import Settings


class FakeRunner:
    """Stands in for run_applescript. `send_reply` decides what each send script yields."""

    def __init__(self, send_reply: Callable[[int], str] | str = "success", running: bool = True):
        self.send_reply = send_reply
        self.running = running
        self.scripts: List[str] = []
        self.send_calls = 0
        self.launch_calls = 0

    async def __call__(self, script: str) -> str:
        self.scripts.append(script)
        if "is running" in script:
            return "true" if self.running else "false"
        if "activate" in script:
            self.launch_calls += 1
            self.running = True
            return ""
        self.send_calls += 1
        reply = self.send_reply(self.send_calls) if callable(self.send_reply) else self.send_reply
        if isinstance(reply, Exception):
            raise reply
        return reply


class SleepRecorder:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(CHAT_DB_PATH=str(tmp_path / "missing-chat.db"))


# Apple stores dates as nanoseconds since 2001-01-01 UTC
NS = 1_000_000_000

SCHEMA = [
    "CREATE TABLE handle (ROWID INTEGER PRIMARY KEY, id TEXT, service TEXT)",
    "CREATE TABLE message (ROWID INTEGER PRIMARY KEY, guid TEXT, text TEXT, handle_id INTEGER, date INTEGER, "
    "is_from_me INTEGER, reply_to_guid TEXT, is_read INTEGER, date_read INTEGER, service TEXT)",
    "CREATE TABLE chat (ROWID INTEGER PRIMARY KEY, chat_identifier TEXT, display_name TEXT)",
    "CREATE TABLE attachment (ROWID INTEGER PRIMARY KEY, guid TEXT, filename TEXT, mime_type TEXT, "
    "total_bytes INTEGER, transfer_name TEXT)",
    "CREATE TABLE message_attachment_join (message_id INTEGER, attachment_id INTEGER)",
]


@pytest.fixture
def chat_db(tmp_path) -> str:
    path = tmp_path / "chat.db"
    engine = create_engine(f"sqlite:///{path}")
    with engine.begin() as conn:
        for ddl in SCHEMA:
            conn.execute(text(ddl))
        conn.execute(text(
            "INSERT INTO handle (ROWID, id, service) VALUES "
            "(1, '+15551234567', 'iMessage'), (2, 'friend@example.com', 'iMessage')"
        ))
        conn.execute(text(
            "INSERT INTO message (ROWID, guid, text, handle_id, date, is_from_me, reply_to_guid, is_read, date_read, service) VALUES "
            "(1, 'm1', 'Hello world', 1, :d1, 0, NULL, 1, :r1, 'iMessage'), "
            "(2, 'm2', 'Dinner at 7: usual place?', 2, :d2, 0, NULL, 0, 0, 'iMessage'), "
            "(3, 'm3', 'on my way', 0, :d3, 1, 'm2', 1, 0, 'iMessage'), "
            "(4, 'm4', NULL, 1, :d4, 0, NULL, 0, 0, 'iMessage'), "
            "(5, 'm5', NULL, 2, :d5, 0, NULL, 0, 0, 'iMessage')"
        ), {"d1": 700000000 * NS, "r1": 700000060 * NS, "d2": 700000100 * NS,
            "d3": 700000200 * NS, "d4": 700000300 * NS, "d5": 700000400 * NS})
        conn.execute(text(
            "INSERT INTO chat (ROWID, chat_identifier, display_name) VALUES "
            "(1, '+15551234567', ''), (2, 'chat123', 'Family')"
        ))
        conn.execute(text(
            "INSERT INTO attachment (ROWID, guid, filename, mime_type, total_bytes, transfer_name) VALUES "
            "(1, 'att1', '~/Library/Messages/Attachments/ab/photo.jpg', 'image/jpeg', 2048, 'photo.jpg'), "
            "(2, 'att2', NULL, NULL, 0, NULL)"
        ))
        conn.execute(text("INSERT INTO message_attachment_join (message_id, attachment_id) VALUES (4, 1)"))
    engine.dispose()
    return str(path)
