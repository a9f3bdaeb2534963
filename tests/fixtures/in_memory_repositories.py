"""In-memory repository implementations for testing."""

from __future__ import annotations

from streamlock.infrastructure.creator.secret_store_impl import (
    KeyValueCommitmentTreeStore,
    KeyValueMasterSecretStore,
)
from streamlock.infrastructure.creator.video_repository_impl import (
    VideoRepositoryImpl,
)
from streamlock.infrastructure.viewer.session_key_repository_impl import (
    SessionKeyRepositoryImpl,
)

from .in_memory_storage import InMemoryKeyValueStore


class InMemoryVideoRepository(VideoRepositoryImpl):
    """In-memory video repository for testing."""

    def __init__(self) -> None:
        store = InMemoryKeyValueStore()
        super().__init__(store)
        self._store = store

    def clear(self) -> None:
        """Clear all data (useful for test teardown)."""
        self._store.clear()


class InMemoryMasterSecretStore(KeyValueMasterSecretStore):
    def __init__(self) -> None:
        store = InMemoryKeyValueStore()
        super().__init__(store)
        self._store = store

    def clear(self) -> None:
        self._store.clear()


class InMemoryCommitmentTreeStore(KeyValueCommitmentTreeStore):
    def __init__(self) -> None:
        store = InMemoryKeyValueStore()
        super().__init__(store)
        self._store = store

    def clear(self) -> None:
        self._store.clear()


class InMemorySessionKeyRepository(SessionKeyRepositoryImpl):
    """In-memory session key repository for viewer testing."""

    def __init__(self) -> None:
        store = InMemoryKeyValueStore()
        super().__init__(store)
        self._store = store

    def clear(self) -> None:
        self._store.clear()
