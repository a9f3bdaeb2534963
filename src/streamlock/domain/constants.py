"""Protocol constants shared by the key server and the viewer."""

from __future__ import annotations

from typing import Final

PROTOCOL_VERSION: Final[int] = 1
X402_VERSION: Final[int] = 1

HKDF_SALT: Final[bytes] = b"streamlock-v1"
HKDF_INFO_KEY: Final[str] = "segment-key"
HKDF_INFO_IV: Final[str] = "segment-iv"

MASTER_SECRET_LENGTH: Final[int] = 32
AES_KEY_LENGTH: Final[int] = 16
AES_IV_LENGTH: Final[int] = 16

DEFAULT_SEGMENT_DURATION: Final[float] = 5.0
DEFAULT_PREPAID_SEGMENTS: Final[int] = 20
DEFAULT_TOPUP_THRESHOLD: Final[int] = 5
SESSION_EXPIRY_SECONDS: Final[int] = 7200

PROTOCOL_MODULE: Final[str] = "protocol"
PAY_FOR_SEGMENT_FUNCTION: Final[str] = "pay_for_segment"
PAYMENT_SCHEME: Final[str] = "exact"
PAYMENT_HEADER: Final[str] = "X-Payment"

APTOS_COIN: Final[str] = "0x1::aptos_coin::AptosCoin"
OCTAS_PER_APT: Final[int] = 100_000_000

SEGMENT_PAID_EVENT: Final[str] = "SegmentPaidEvent"
VIDEO_REGISTERED_EVENT: Final[str] = "VideoRegisteredEvent"
SESSION_STARTED_EVENT: Final[str] = "SessionStartedEvent"
SESSION_ENDED_EVENT: Final[str] = "SessionEndedEvent"
EARNINGS_WITHDRAWN_EVENT: Final[str] = "EarningsWithdrawnEvent"

NETWORK_NODE_URLS: Final[dict[str, str]] = {
    "mainnet": "https://fullnode.mainnet.aptoslabs.com/v1",
    "testnet": "https://fullnode.testnet.aptoslabs.com/v1",
    "devnet": "https://fullnode.devnet.aptoslabs.com/v1",
}


def entry_function_id(contract_address: str, name: str) -> str:
    """Fully-qualified ``address::module::function`` identifier."""
    return f"{contract_address}::{PROTOCOL_MODULE}::{name}"
