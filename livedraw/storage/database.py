"""Async SQLite storage layer for livedraw.

Uses aiosqlite for async access.  Holds chat users, messages, block and
ban relations, and the archived daily results.
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

from livedraw.core.models import ChatMessage, Identity, LotteryResult, resolve_zone
from livedraw.exceptions import StorageError

DEFAULT_DB_PATH = Path(os.environ.get("LD_DB_PATH", "livedraw.db"))

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS chat_users (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL DEFAULT '',
    username TEXT NOT NULL DEFAULT '',
    photo_url TEXT NOT NULL DEFAULT '',
    is_online INTEGER NOT NULL DEFAULT 0,
    last_seen TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS chat_messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    username TEXT NOT NULL,
    photo_url TEXT NOT NULL DEFAULT '',
    message TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS chat_blocks (
    blocker_id TEXT NOT NULL,
    blocked_id TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (blocker_id, blocked_id)
);

CREATE TABLE IF NOT EXISTS chat_banned_users (
    user_id TEXT PRIMARY KEY,
    username TEXT NOT NULL DEFAULT '',
    banned_by TEXT NOT NULL DEFAULT 'admin',
    reason TEXT NOT NULL DEFAULT '',
    banned_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS result_history (
    draw_date TEXT PRIMARY KEY,
    noon_set TEXT NOT NULL,
    noon_value TEXT NOT NULL,
    noon_result TEXT NOT NULL,
    evening_set TEXT NOT NULL,
    evening_value TEXT NOT NULL,
    evening_result TEXT NOT NULL,
    morning_modern TEXT NOT NULL,
    morning_internet TEXT NOT NULL,
    afternoon_modern TEXT NOT NULL,
    afternoon_internet TEXT NOT NULL,
    archived_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_messages_created
    ON chat_messages (created_at DESC);

CREATE INDEX IF NOT EXISTS idx_messages_user
    ON chat_messages (user_id);

CREATE INDEX IF NOT EXISTS idx_users_online
    ON chat_users (is_online);

CREATE INDEX IF NOT EXISTS idx_blocks_blocked
    ON chat_blocks (blocked_id);
"""


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class Database:
    """Async SQLite database wrapper."""

    def __init__(self, db_path: Path | str = DEFAULT_DB_PATH, zone_name: str = "Asia/Yangon") -> None:
        self.db_path = Path(db_path)
        self.zone = resolve_zone(zone_name)
        self._db: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(SCHEMA_SQL)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StorageError("Database not connected. Call connect() first.")
        return self._db

    # --- Users & presence ---

    async def upsert_user(self, identity: Identity, online: bool = True) -> None:
        now = _utcnow()
        await self.db.execute(
            """INSERT INTO chat_users (id, email, username, photo_url, is_online, last_seen, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   email = CASE WHEN excluded.email != '' THEN excluded.email ELSE email END,
                   username = excluded.username,
                   photo_url = excluded.photo_url,
                   is_online = excluded.is_online,
                   last_seen = excluded.last_seen""",
            (
                identity.user_id,
                identity.email,
                identity.username,
                identity.photo_url,
                int(online),
                now,
                now,
            ),
        )
        await self.db.commit()

    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        cursor = await self.db.execute("SELECT * FROM chat_users WHERE id = ?", (user_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    async def set_online(self, user_id: str, online: bool) -> None:
        await self.db.execute(
            "UPDATE chat_users SET is_online = ?, last_seen = ? WHERE id = ?",
            (int(online), _utcnow(), user_id),
        )
        await self.db.commit()

    async def reset_presence(self) -> int:
        """Mark everyone offline. Presence does not survive a restart."""
        cursor = await self.db.execute("UPDATE chat_users SET is_online = 0 WHERE is_online = 1")
        await self.db.commit()
        return cursor.rowcount

    async def list_online_users(self, viewer_id: str | None = None) -> list[dict[str, Any]]:
        """Users flagged online, minus anyone *viewer_id* has blocked."""
        cursor = await self.db.execute(
            """SELECT id, username, photo_url FROM chat_users
               WHERE is_online = 1
                 AND id NOT IN (SELECT blocked_id FROM chat_blocks WHERE blocker_id = ?)
               ORDER BY username ASC""",
            (viewer_id or "",),
        )
        rows = await cursor.fetchall()
        return [self._row_to_public_user(r) for r in rows]

    def _row_to_user(self, row: aiosqlite.Row) -> dict[str, Any]:
        return {
            "user_id": row["id"],
            "email": row["email"],
            "username": row["username"],
            "photo_url": row["photo_url"],
            "is_online": bool(row["is_online"]),
            "last_seen": row["last_seen"],
            "created_at": row["created_at"],
        }

    def _row_to_public_user(self, row: aiosqlite.Row) -> dict[str, Any]:
        return {"user_id": row["id"], "username": row["username"], "photo_url": row["photo_url"]}

    # --- Messages ---

    async def insert_message(
        self, identity: Identity, text: str, created_at: datetime | None = None
    ) -> ChatMessage:
        created_at = created_at or datetime.now(self.zone)
        cursor = await self.db.execute(
            """INSERT INTO chat_messages (user_id, username, photo_url, message, created_at)
               VALUES (?, ?, ?, ?, ?)""",
            (identity.user_id, identity.username, identity.photo_url, text, created_at.isoformat()),
        )
        await self.db.commit()
        return ChatMessage(
            id=cursor.lastrowid,
            user_id=identity.user_id,
            username=identity.username,
            photo_url=identity.photo_url,
            message=text,
            created_at=created_at,
        )

    async def get_recent_messages(
        self, limit: int = 30, viewer_id: str | None = None
    ) -> list[ChatMessage]:
        """Most recent messages in chronological order, hiding senders *viewer_id* blocked."""
        cursor = await self.db.execute(
            """SELECT * FROM chat_messages
               WHERE user_id NOT IN (SELECT blocked_id FROM chat_blocks WHERE blocker_id = ?)
               ORDER BY id DESC LIMIT ?""",
            (viewer_id or "", limit),
        )
        rows = await cursor.fetchall()
        return [self._row_to_message(r) for r in reversed(rows)]

    async def get_all_messages(self, limit: int = 100) -> list[ChatMessage]:
        """Newest first, unfiltered. Admin view."""
        cursor = await self.db.execute(
            "SELECT * FROM chat_messages ORDER BY id DESC LIMIT ?", (limit,)
        )
        rows = await cursor.fetchall()
        return [self._row_to_message(r) for r in rows]

    def _row_to_message(self, row: aiosqlite.Row) -> ChatMessage:
        return ChatMessage(
            id=row["id"],
            user_id=row["user_id"],
            username=row["username"],
            photo_url=row["photo_url"],
            message=row["message"],
            created_at=datetime.fromisoformat(row["created_at"]).astimezone(self.zone),
        )

    # --- Bans ---

    async def is_banned(self, user_id: str) -> bool:
        cursor = await self.db.execute(
            "SELECT 1 FROM chat_banned_users WHERE user_id = ?", (user_id,)
        )
        return await cursor.fetchone() is not None

    async def ban_user(self, user_id: str, username: str, banned_by: str, reason: str) -> int:
        """Ban *user_id* and delete their messages in one transaction.

        Returns the number of deleted messages.
        """
        try:
            await self.db.execute(
                """INSERT INTO chat_banned_users (user_id, username, banned_by, reason, banned_at)
                   VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT(user_id) DO UPDATE SET
                       banned_by = excluded.banned_by,
                       reason = excluded.reason,
                       banned_at = excluded.banned_at""",
                (user_id, username, banned_by, reason, _utcnow()),
            )
            cursor = await self.db.execute(
                "DELETE FROM chat_messages WHERE user_id = ?", (user_id,)
            )
            deleted = cursor.rowcount
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return deleted

    async def unban_user(self, user_id: str) -> bool:
        cursor = await self.db.execute(
            "DELETE FROM chat_banned_users WHERE user_id = ?", (user_id,)
        )
        await self.db.commit()
        return cursor.rowcount > 0

    async def list_banned(self) -> list[dict[str, Any]]:
        cursor = await self.db.execute(
            "SELECT * FROM chat_banned_users ORDER BY banned_at DESC"
        )
        rows = await cursor.fetchall()
        return [
            {
                "user_id": r["user_id"],
                "username": r["username"],
                "banned_by": r["banned_by"],
                "reason": r["reason"],
                "banned_at": r["banned_at"],
            }
            for r in rows
        ]

    # --- Blocks ---

    async def block(self, blocker_id: str, blocked_id: str) -> None:
        await self.db.execute(
            """INSERT OR IGNORE INTO chat_blocks (blocker_id, blocked_id, created_at)
               VALUES (?, ?, ?)""",
            (blocker_id, blocked_id, _utcnow()),
        )
        await self.db.commit()

    async def unblock(self, blocker_id: str, blocked_id: str) -> bool:
        cursor = await self.db.execute(
            "DELETE FROM chat_blocks WHERE blocker_id = ? AND blocked_id = ?",
            (blocker_id, blocked_id),
        )
        await self.db.commit()
        return cursor.rowcount > 0

    async def is_blocked(self, blocker_id: str, blocked_id: str) -> bool:
        cursor = await self.db.execute(
            "SELECT 1 FROM chat_blocks WHERE blocker_id = ? AND blocked_id = ?",
            (blocker_id, blocked_id),
        )
        return await cursor.fetchone() is not None

    async def list_blocked(self, blocker_id: str) -> list[dict[str, Any]]:
        """Users *blocker_id* has blocked, with their display details."""
        cursor = await self.db.execute(
            """SELECT u.id, u.username, u.photo_url
               FROM chat_blocks b JOIN chat_users u ON b.blocked_id = u.id
               WHERE b.blocker_id = ?
               ORDER BY u.username ASC""",
            (blocker_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_public_user(r) for r in rows]

    async def get_blocker_ids(self, blocked_id: str) -> set[str]:
        """Everyone who has blocked *blocked_id*."""
        cursor = await self.db.execute(
            "SELECT blocker_id FROM chat_blocks WHERE blocked_id = ?", (blocked_id,)
        )
        rows = await cursor.fetchall()
        return {r["blocker_id"] for r in rows}

    # --- Result history ---

    async def insert_result_history(self, result: LotteryResult) -> bool:
        """Archive *result* under its draw date. Existing dates are left untouched."""
        cursor = await self.db.execute(
            """INSERT OR IGNORE INTO result_history
               (draw_date, noon_set, noon_value, noon_result, evening_set, evening_value,
                evening_result, morning_modern, morning_internet, afternoon_modern,
                afternoon_internet, archived_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                result.draw_date,
                result.noon_set,
                result.noon_value,
                result.noon_result,
                result.evening_set,
                result.evening_value,
                result.evening_result,
                result.morning_modern,
                result.morning_internet,
                result.afternoon_modern,
                result.afternoon_internet,
                _utcnow(),
            ),
        )
        await self.db.commit()
        return cursor.rowcount > 0

    async def list_result_history(self, limit: int = 30, offset: int = 0) -> list[dict[str, Any]]:
        cursor = await self.db.execute(
            "SELECT * FROM result_history ORDER BY archived_at DESC LIMIT ? OFFSET ?",
            (limit, offset),
        )
        rows = await cursor.fetchall()
        return [{k: r[k] for k in r.keys()} for r in rows]  # noqa: SIM118
