"""FastAPI dependencies for the key server."""

from __future__ import annotations

from typing import Optional, Union

from fastapi import Depends

from ...application.creator.use_cases.earnings import CreatorEarningsService
from ...application.creator.use_cases.key_release import KeyReleaseService
from ...application.creator.use_cases.payment_verifier import PaymentVerifier
from ...application.creator.use_cases.registration import VideoRegistrationService
from ...domain.creator.secret_store import CommitmentTreeStore, MasterSecretStore
from ...domain.creator.video_repository import VideoRepository
from ...domain.shared.ledger_client_protocol import LedgerClientProtocol
from ...envs.key_server_env import Settings, get_settings
from ...infrastructure.creator.secret_store_impl import (
    KeyValueCommitmentTreeStore,
    KeyValueMasterSecretStore,
)
from ...infrastructure.creator.video_repository_impl import VideoRepositoryImpl
from ...infrastructure.database import DatabaseClient, get_database_client
from ...infrastructure.ledger.account import Ed25519Account
from ...infrastructure.ledger.aptos_client import AptosLedgerClient
from ...infrastructure.ledger.contract import ProtocolContract
from ...infrastructure.storage import KeyValueStore, RedisKeyValueStore

_ledger_client: Union[AptosLedgerClient, None] = None


def get_database_client_with_settings(
    settings: Settings = Depends(get_settings),
) -> DatabaseClient:
    """Get database client with settings."""
    return get_database_client(settings)


def get_key_value_store(
    db_client: DatabaseClient = Depends(get_database_client_with_settings),
) -> KeyValueStore:
    """Get key-value store."""
    return RedisKeyValueStore(db_client)


def get_video_repository(
    store: KeyValueStore = Depends(get_key_value_store),
) -> VideoRepository:
    """Get video repository."""
    return VideoRepositoryImpl(store)


def get_master_secret_store(
    store: KeyValueStore = Depends(get_key_value_store),
) -> MasterSecretStore:
    return KeyValueMasterSecretStore(store)


def get_commitment_tree_store(
    store: KeyValueStore = Depends(get_key_value_store),
) -> CommitmentTreeStore:
    return KeyValueCommitmentTreeStore(store)


def get_ledger_client(
    settings: Settings = Depends(get_settings),
) -> LedgerClientProtocol:
    """Get or create the shared ledger client."""
    global _ledger_client
    if _ledger_client is None:
        _ledger_client = AptosLedgerClient(
            settings.ledger_node_url, settings.ledger_network
        )
    return _ledger_client


def get_protocol_contract(
    ledger: LedgerClientProtocol = Depends(get_ledger_client),
    settings: Settings = Depends(get_settings),
) -> ProtocolContract:
    return ProtocolContract(ledger, settings.contract_address)


def get_creator_signer(
    settings: Settings = Depends(get_settings),
) -> Optional[Ed25519Account]:
    """Signer used to publish commitments, if one is configured."""
    if not settings.creator_private_key_hex:
        return None
    return Ed25519Account.from_private_key_hex(settings.creator_private_key_hex)


def get_payment_verifier(
    ledger: LedgerClientProtocol = Depends(get_ledger_client),
    settings: Settings = Depends(get_settings),
) -> PaymentVerifier:
    """Get payment verifier."""
    return PaymentVerifier(ledger, contract_address=settings.contract_address)


def get_key_release_service(
    video_repository: VideoRepository = Depends(get_video_repository),
    secret_store: MasterSecretStore = Depends(get_master_secret_store),
    tree_store: CommitmentTreeStore = Depends(get_commitment_tree_store),
    payment_verifier: PaymentVerifier = Depends(get_payment_verifier),
    settings: Settings = Depends(get_settings),
) -> KeyReleaseService:
    """Get key release service."""
    return KeyReleaseService(
        video_repository,
        secret_store,
        tree_store,
        payment_verifier,
        network=settings.ledger_network,
        contract_address=settings.contract_address,
        payment_resource=settings.payment_resource,
    )


def get_video_registration_service(
    video_repository: VideoRepository = Depends(get_video_repository),
    secret_store: MasterSecretStore = Depends(get_master_secret_store),
    tree_store: CommitmentTreeStore = Depends(get_commitment_tree_store),
    contract: ProtocolContract = Depends(get_protocol_contract),
    creator_signer: Optional[Ed25519Account] = Depends(get_creator_signer),
    settings: Settings = Depends(get_settings),
) -> VideoRegistrationService:
    """Get video registration service."""
    return VideoRegistrationService(
        video_repository,
        secret_store,
        tree_store,
        key_server_base_url=settings.public_base_url,
        contract=contract if creator_signer is not None else None,
        creator_signer=creator_signer,
    )


def get_creator_earnings_service(
    contract: ProtocolContract = Depends(get_protocol_contract),
    creator_signer: Optional[Ed25519Account] = Depends(get_creator_signer),
) -> CreatorEarningsService:
    return CreatorEarningsService(contract, creator_signer)
