"""Test fixtures for in-memory implementations."""

from .fake_ledger import FAKE_CONTRACT_ADDRESS, FakeLedgerClient
from .in_memory_repositories import (
    InMemoryCommitmentTreeStore,
    InMemoryMasterSecretStore,
    InMemorySessionKeyRepository,
    InMemoryVideoRepository,
)
from .in_memory_storage import InMemoryKeyValueStore

__all__ = [
    "FAKE_CONTRACT_ADDRESS",
    "FakeLedgerClient",
    "InMemoryCommitmentTreeStore",
    "InMemoryKeyValueStore",
    "InMemoryMasterSecretStore",
    "InMemorySessionKeyRepository",
    "InMemoryVideoRepository",
]
