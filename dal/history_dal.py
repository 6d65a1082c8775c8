"""Async data access for the analysis history.

The history is an ordered, newest-first list of at most 20 sessions. It is
stored as one JSON blob in the HISTORY table and always read and written
whole. A missing or unreadable blob loads as an empty history.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import List, Optional

from models.session_models import Session
from services.session_state import HISTORY_LIMIT, push_history, remove_from_history
from utils.database_init import AsyncDatabaseInitializer

LOGGER = logging.getLogger(__name__)

HISTORY_KEY = "urbanPlanningAnalyses"


class HistoryDAL:
    """Load and save the session history blob.

    The constructor accepts an `AsyncDatabaseInitializer` (or any object
    exposing an async `connection()` context manager that yields an
    `aiosqlite.Connection`).
    """

    def __init__(self, db_initializer: AsyncDatabaseInitializer, limit: int = HISTORY_LIMIT) -> None:
        self._db = db_initializer
        self.limit = limit
        # Serialises read-modify-write cycles on the single blob.
        self._lock = asyncio.Lock()

    @staticmethod
    def decode(blob: Optional[str]) -> List[Session]:
        """Decode a stored blob; anything unreadable becomes an empty history."""
        if not blob:
            return []
        try:
            items = json.loads(blob)
            if not isinstance(items, list):
                raise TypeError(f"expected a list, got {type(items).__name__}")
            return [Session.from_dict(item) for item in items]
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            LOGGER.warning("History blob is unreadable, starting empty: %s", exc)
            return []

    @staticmethod
    def encode(sessions: List[Session]) -> str:
        return json.dumps([session.to_dict() for session in sessions])

    async def _read_blob(self) -> Optional[str]:
        async with self._db.connection() as conn:
            cur = await conn.execute("SELECT blob FROM HISTORY WHERE key = ?", (HISTORY_KEY,))
            row = await cur.fetchone()
            return row[0] if row else None

    async def _write(self, sessions: List[Session]) -> None:
        async with self._db.connection() as conn:
            await conn.execute(
                "INSERT INTO HISTORY (key, blob, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET blob = excluded.blob, updated_at = excluded.updated_at",
                (HISTORY_KEY, self.encode(sessions), int(time.time())),
            )
            await conn.commit()

    async def load(self) -> List[Session]:
        """Return the stored sessions, newest first."""
        return self.decode(await self._read_blob())[: self.limit]

    async def get(self, session_id: int) -> Optional[Session]:
        for session in await self.load():
            if session.id == session_id:
                return session
        return None

    async def add(self, session: Session) -> List[Session]:
        """Insert a session at the front, evicting the oldest beyond the cap."""
        async with self._lock:
            sessions = push_history(await self.load(), session, self.limit)
            await self._write(sessions)
            return sessions

    async def delete(self, session_id: int) -> bool:
        """Remove one session. Returns True if it was present."""
        async with self._lock:
            sessions = await self.load()
            remaining = remove_from_history(sessions, session_id)
            if len(remaining) == len(sessions):
                return False
            await self._write(remaining)
            return True
