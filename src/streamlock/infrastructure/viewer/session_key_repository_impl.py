"""Session key repository implementation over a storage abstraction."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from ...domain.viewer.entities import SessionKeyState
from ...domain.viewer.session_key_repository import SessionKeyRepository
from ..storage import KeyValueStore


class SessionKeyRepositoryImpl(SessionKeyRepository):
    """Stores the key under ``session_key:{owner}``, expiring with the key."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def save(self, state: SessionKeyState) -> None:
        ttl = int((state.expires_at - datetime.now(timezone.utc)).total_seconds())
        await self.store.set(
            f"session_key:{state.funding_owner}",
            state.model_dump_json(),
            ttl_seconds=max(ttl, 1),
        )

    async def get(self, funding_owner: str) -> Optional[SessionKeyState]:
        data = await self.store.get(f"session_key:{funding_owner}")
        if not data:
            return None
        state = SessionKeyState.model_validate_json(data)
        if state.is_expired():
            await self.delete(funding_owner)
            return None
        return state

    async def delete(self, funding_owner: str) -> bool:
        return (await self.store.delete(f"session_key:{funding_owner}")) > 0
