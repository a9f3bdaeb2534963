"""Session key storage interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from .entities import SessionKeyState


class SessionKeyRepository(ABC):
    """Persists at most one active session key per funding owner."""

    @abstractmethod
    async def save(self, state: SessionKeyState) -> None:
        pass

    @abstractmethod
    async def get(self, funding_owner: str) -> Optional[SessionKeyState]:
        pass

    @abstractmethod
    async def delete(self, funding_owner: str) -> bool:
        pass
