"""Pytest fixtures for use case tests."""

from __future__ import annotations

from typing import AsyncGenerator

import pytest

from streamlock.application.creator.dtos import RegisteredVideoDTO, RegisterVideoDTO
from streamlock.application.creator.use_cases.key_release import KeyReleaseService
from streamlock.application.creator.use_cases.payment_verifier import (
    PaymentVerifier,
)
from streamlock.application.creator.use_cases.registration import (
    VideoRegistrationService,
)
from streamlock.application.viewer.use_cases.session import ViewerSessionService
from streamlock.client.session_keys import SessionKeyManager
from streamlock.infrastructure.ledger.account import Ed25519Account
from streamlock.infrastructure.ledger.contract import ProtocolContract
from tests.fixtures import (
    FAKE_CONTRACT_ADDRESS,
    FakeLedgerClient,
    InMemoryCommitmentTreeStore,
    InMemoryMasterSecretStore,
    InMemorySessionKeyRepository,
    InMemoryVideoRepository,
)

KEY_SERVER_URL = "http://testserver/api/v1"
GAS_PER_TX = 10


# ============================================================================
# Creator Repository Fixtures
# ============================================================================


@pytest.fixture
async def video_repository() -> AsyncGenerator[InMemoryVideoRepository, None]:
    """Create an in-memory video repository."""
    repo = InMemoryVideoRepository()
    yield repo
    repo.clear()


@pytest.fixture
async def master_secret_store() -> AsyncGenerator[InMemoryMasterSecretStore, None]:
    store = InMemoryMasterSecretStore()
    yield store
    store.clear()


@pytest.fixture
async def commitment_tree_store() -> AsyncGenerator[
    InMemoryCommitmentTreeStore, None
]:
    store = InMemoryCommitmentTreeStore()
    yield store
    store.clear()


@pytest.fixture
async def session_key_repository() -> AsyncGenerator[
    InMemorySessionKeyRepository, None
]:
    repo = InMemorySessionKeyRepository()
    yield repo
    repo.clear()


# ============================================================================
# Ledger Fixtures
# ============================================================================


@pytest.fixture
def contract(fake_ledger: FakeLedgerClient) -> ProtocolContract:
    """Protocol contract bound to the in-memory ledger."""
    return ProtocolContract(fake_ledger, FAKE_CONTRACT_ADDRESS)


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest.fixture
def payment_verifier(fake_ledger: FakeLedgerClient) -> PaymentVerifier:
    return PaymentVerifier(fake_ledger, contract_address=FAKE_CONTRACT_ADDRESS)


@pytest.fixture
def key_release_service(
    video_repository: InMemoryVideoRepository,
    master_secret_store: InMemoryMasterSecretStore,
    commitment_tree_store: InMemoryCommitmentTreeStore,
    payment_verifier: PaymentVerifier,
) -> KeyReleaseService:
    """Key release service checking payments on the in-memory ledger."""
    return KeyReleaseService(
        video_repository,
        master_secret_store,
        commitment_tree_store,
        payment_verifier,
        network="testnet",
        contract_address=FAKE_CONTRACT_ADDRESS,
    )


@pytest.fixture
def registration_service(
    video_repository: InMemoryVideoRepository,
    master_secret_store: InMemoryMasterSecretStore,
    commitment_tree_store: InMemoryCommitmentTreeStore,
    contract: ProtocolContract,
    creator_account: Ed25519Account,
) -> VideoRegistrationService:
    """Registration service that publishes commitments on-chain."""
    return VideoRegistrationService(
        video_repository,
        master_secret_store,
        commitment_tree_store,
        key_server_base_url=KEY_SERVER_URL,
        contract=contract,
        creator_signer=creator_account,
    )


@pytest.fixture
def viewer_service(
    contract: ProtocolContract,
    viewer_account: Ed25519Account,
    session_key_repository: InMemorySessionKeyRepository,
) -> ViewerSessionService:
    return ViewerSessionService(
        contract,
        viewer_account,
        SessionKeyManager(session_key_repository),
        per_tx_gas_estimate=GAS_PER_TX,
        transfer_gas_reserve=GAS_PER_TX,
    )


# ============================================================================
# Scenario Fixtures
# ============================================================================


@pytest.fixture
async def registered_video(
    registration_service: VideoRegistrationService,
) -> RegisteredVideoDTO:
    """An 8-segment video at 100 octas per segment, registered on-chain."""
    return await registration_service.register_video(
        RegisterVideoDTO(
            video_id="big-buck-bunny",
            total_segments=8,
            price_per_segment=100,
            content_uri="ipfs://bbb",
            duration_seconds=40,
        )
    )
