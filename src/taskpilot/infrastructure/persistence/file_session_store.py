"""
File-Based Session Store

One JSON document per session under ``sessions_dir``:

    {sessions_dir}/{session_id}.json

Writes go through a temp file and a rename so a crash never leaves a
half-written session behind. Saves of the same session are serialized with
a per-session lock.
"""

import asyncio
import json
import os
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os
import structlog

from taskpilot.core.domain.models import Session


class FileSessionStore:
    """
    Session persistence on the local file system.

    Args:
        sessions_dir: Directory holding the session files
    """

    def __init__(self, sessions_dir: str = ".taskpilot/sessions"):
        self.sessions_dir = Path(sessions_dir)
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self.locks: dict[str, asyncio.Lock] = {}
        self.logger = structlog.get_logger().bind(component="file_session_store")

    def _get_lock(self, session_id: str) -> asyncio.Lock:
        if session_id not in self.locks:
            self.locks[session_id] = asyncio.Lock()
        return self.locks[session_id]

    def _session_path(self, session_id: str) -> Path:
        return self.sessions_dir / f"{session_id}.json"

    async def save(self, session: Session) -> bool:
        """
        Write ``session`` to disk.

        Returns:
            True on success. Failures are logged and reported as False so a
            persistence problem never aborts a running session.
        """
        async with self._get_lock(session.id):
            path = self._session_path(session.id)
            temp_path = path.with_suffix(".json.tmp")
            try:
                payload = json.dumps(session.to_dict(), indent=2, ensure_ascii=False)
                async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                    await f.write(payload)
                await aiofiles.os.replace(temp_path, path)
            except (OSError, TypeError, ValueError) as e:
                self.logger.error(
                    "session_save_failed", session_id=session.id, error=str(e)
                )
                return False

        self.logger.debug(
            "session_saved", session_id=session.id, status=session.status.value
        )
        return True

    async def load(self, session_id: str) -> Optional[Session]:
        """Load one session; None if it does not exist or cannot be read."""
        path = self._session_path(session_id)
        if not path.exists():
            return None
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                data = json.loads(await f.read())
            return Session.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            self.logger.error("session_load_failed", session_id=session_id, error=str(e))
            return None

    async def persist_sessions(self, sessions: list[Session]) -> None:
        for session in sessions:
            await self.save(session)

    async def load_sessions(self) -> list[Session]:
        """All readable sessions, oldest first; corrupt files are skipped."""
        sessions = []
        for name in sorted(os.listdir(self.sessions_dir)):
            if not name.endswith(".json"):
                continue
            session = await self.load(name[: -len(".json")])
            if session is not None:
                sessions.append(session)
        sessions.sort(key=lambda s: s.created_at)
        return sessions

