"""KeyValueStore-backed master secret and commitment tree stores."""

from __future__ import annotations

import json
from typing import Optional

from ...crypto.commitment import CommitmentTree
from ...domain.creator.secret_store import CommitmentTreeStore, MasterSecretStore
from ..storage import KeyValueStore


class KeyValueMasterSecretStore(MasterSecretStore):
    """Stores secrets hex-encoded under ``master_secret:{video_id}``."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def get(self, video_id: str) -> Optional[bytes]:
        data = await self.store.get(f"master_secret:{video_id}")
        if data is None:
            return None
        return bytes.fromhex(data)

    async def set(self, video_id: str, secret: bytes) -> None:
        await self.store.set(f"master_secret:{video_id}", secret.hex())

    async def delete(self, video_id: str) -> bool:
        return (await self.store.delete(f"master_secret:{video_id}")) > 0


class KeyValueCommitmentTreeStore(CommitmentTreeStore):
    def __init__(self, store: KeyValueStore):
        self.store = store

    async def get(self, video_id: str) -> Optional[CommitmentTree]:
        data = await self.store.get(f"commitment_tree:{video_id}")
        if data is None:
            return None
        return CommitmentTree.load(json.loads(data))

    async def set(self, video_id: str, tree: CommitmentTree) -> None:
        await self.store.set(f"commitment_tree:{video_id}", json.dumps(tree.dump()))

    async def delete(self, video_id: str) -> bool:
        return (await self.store.delete(f"commitment_tree:{video_id}")) > 0
