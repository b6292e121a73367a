"""Session persistence protocol."""

from typing import Optional, Protocol

from taskpilot.core.domain.models import Session


class SessionStoreProtocol(Protocol):
    async def save(self, session: Session) -> bool:
        ...

    async def load(self, session_id: str) -> Optional[Session]:
        ...

    async def persist_sessions(self, sessions: list[Session]) -> None:
        ...

    async def load_sessions(self) -> list[Session]:
        ...
