"""Watch a video end to end: open a session, pay per segment, settle."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .application.viewer.use_cases.session import ViewerSessionService
from .client.key_cache import KeyCache
from .client.key_loader import ClientKeyLoader
from .client.payment_client import OnChainCommitmentSource
from .client.retry import RetryPolicy
from .client.session_keys import SessionKeyConfig, SessionKeyManager
from .client.session_manager import ViewingSessionManager
from .domain.errors import VideoNotFoundError
from .envs.viewer_env import Settings, get_settings
from .infrastructure.database import DatabaseClient
from .infrastructure.key_server.key_client import KeyServerClient
from .infrastructure.ledger.account import Ed25519Account
from .infrastructure.ledger.aptos_client import AptosLedgerClient
from .infrastructure.ledger.contract import ProtocolContract
from .infrastructure.storage import RedisKeyValueStore
from .infrastructure.viewer.session_key_repository_impl import (
    SessionKeyRepositoryImpl,
)

PREFETCH_AHEAD = 2


async def _open_session(
    service: ViewerSessionService, settings: Settings, ledger_video_id: str
) -> ViewingSessionManager:
    if settings.use_session_key:
        config = SessionKeyConfig(
            spending_limit=0, estimated_segments=settings.prepaid_segments
        )
        return await service.start_with_session_key(
            ledger_video_id, config, settings.prepaid_segments
        )
    return await service.start_session(ledger_video_id, settings.prepaid_segments)


async def watch(settings: Settings) -> None:
    db_client = DatabaseClient(settings)
    try:
        await _watch(settings, db_client)
    finally:
        await db_client.close()


async def _watch(settings: Settings, db_client: DatabaseClient) -> None:
    viewer = Ed25519Account.from_private_key_hex(settings.viewer_private_key_hex)
    ledger_video_id = settings.on_chain_video_id or settings.video_id

    async with AptosLedgerClient(
        settings.ledger_node_url, settings.ledger_network
    ) as ledger, KeyServerClient(settings.key_server_base_url) as key_client:
        contract = ProtocolContract(ledger, settings.contract_address)
        video = await contract.get_video(ledger_video_id)
        if video is None:
            raise VideoNotFoundError(ledger_video_id)

        session_keys: Optional[SessionKeyManager] = None
        if settings.use_session_key:
            session_keys = SessionKeyManager(
                SessionKeyRepositoryImpl(RedisKeyValueStore(db_client))
            )
        service = ViewerSessionService(contract, viewer, session_keys)
        recovered = await service.recover_session_key()
        if recovered is not None:
            print(f"Returned {recovered} octas from a previous session key")
        session = await _open_session(service, settings, ledger_video_id)
        print(f"Session {session.session_id}: {session.remaining_segments} prepaid")

        loader = ClientKeyLoader(
            video_id=settings.video_id,
            ledger_video_id=ledger_video_id,
            key_client=key_client,
            payer=service.make_payer(session),
            root_source=OnChainCommitmentSource(contract),
            session=session,
            retry_policy=RetryPolicy(
                max_attempts=settings.max_retries + 1,
                base_delay=settings.retry_base_delay,
                max_delay=settings.retry_max_delay,
            ),
            cache=KeyCache(ttl_seconds=settings.key_cache_ttl_seconds),
            total_segments=video.total_segments,
        )
        try:
            for index in range(video.total_segments):
                still_needed = video.total_segments - index
                if (
                    session.is_low_balance()
                    and session.remaining_segments < still_needed
                ):
                    added = await service.top_up(session, settings.prepaid_segments)
                    print(f"Topped up {added} octas")
                loader.prefetch(index + 1, PREFETCH_AHEAD)
                await loader.load_key(index)
                print(
                    f"Segment {index}: key verified "
                    f"(payment {loader.payment_for(index)}, "
                    f"{session.remaining_segments} segments left)"
                )
        finally:
            await loader.close()
            settlement = await service.end_session(session)
            print(
                f"Watched {settlement.segments_watched} segments, "
                f"paid {settlement.total_paid}, refunded {settlement.refunded}"
            )


def main() -> None:
    """Main entry point for the viewer demo."""
    logging.basicConfig(level=logging.INFO)
    settings = get_settings()
    print(f"Viewer {settings.viewer_address} on {settings.ledger_network}")
    print(f"Key server: {settings.key_server_base_url}")
    asyncio.run(watch(settings))


if __name__ == "__main__":
    main()
