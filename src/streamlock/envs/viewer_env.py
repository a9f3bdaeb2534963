from __future__ import annotations

import os
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, computed_field, field_validator

from ..domain.constants import DEFAULT_PREPAID_SEGMENTS, NETWORK_NODE_URLS
from ..infrastructure.ledger.account import Ed25519Account, is_valid_address


class Settings(BaseModel):
    viewer_private_key_hex: str
    key_server_base_url: str
    database_url: str
    ledger_node_url: str
    ledger_network: str
    contract_address: str

    video_id: str
    on_chain_video_id: Optional[str] = None
    prepaid_segments: int = DEFAULT_PREPAID_SEGMENTS
    use_session_key: bool = False

    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    key_cache_ttl_seconds: float = 300.0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def viewer_address(self) -> str:
        """Account address derived from the viewer key."""
        return Ed25519Account.from_private_key_hex(self.viewer_private_key_hex).address

    @field_validator("viewer_private_key_hex")
    @classmethod
    def validate_viewer_private_key_hex(cls, v: str) -> str:
        if not v:
            raise ValueError("Viewer private key cannot be empty")
        try:
            Ed25519Account.from_private_key_hex(v)
        except Exception as e:
            raise ValueError(f"Invalid viewer private key: {e}") from e
        return v

    @field_validator("key_server_base_url", "ledger_node_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v:
            raise ValueError("Base URL cannot be empty")
        parsed = urlparse(v)
        if parsed.scheme not in {"http", "https"}:
            raise ValueError("Base URL must start with http:// or https://")
        if not parsed.netloc:
            raise ValueError("Base URL must include a host")
        return v.rstrip("/")

    @field_validator("contract_address")
    @classmethod
    def validate_contract_address(cls, v: str) -> str:
        if not is_valid_address(v):
            raise ValueError(f"Invalid contract address: {v!r}")
        return v

    @field_validator("prepaid_segments", "max_retries")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v


def get_settings() -> Settings:
    viewer_private_key_hex = os.environ.get("VIEWER_PRIVATE_KEY_HEX")
    key_server_base_url = os.environ.get("KEY_SERVER_BASE_URL")
    contract_address = os.environ.get("CONTRACT_ADDRESS")
    video_id = os.environ.get("VIEWER_VIDEO_ID")
    if not (viewer_private_key_hex and key_server_base_url and contract_address):
        raise ValueError(
            "VIEWER_PRIVATE_KEY_HEX, KEY_SERVER_BASE_URL, and CONTRACT_ADDRESS "
            "are required"
        )
    if not video_id:
        raise ValueError("VIEWER_VIDEO_ID is required")

    ledger_network = os.environ.get("LEDGER_NETWORK", "testnet")
    prepaid_str = os.environ.get("VIEWER_PREPAID_SEGMENTS")
    max_retries_str = os.environ.get("VIEWER_MAX_RETRIES")
    base_delay_str = os.environ.get("VIEWER_RETRY_BASE_DELAY")
    max_delay_str = os.environ.get("VIEWER_RETRY_MAX_DELAY")
    cache_ttl_str = os.environ.get("VIEWER_KEY_CACHE_TTL")
    session_key_str = os.environ.get("VIEWER_USE_SESSION_KEY")

    return Settings(
        viewer_private_key_hex=viewer_private_key_hex,
        key_server_base_url=key_server_base_url,
        database_url=os.environ.get(
            "VIEWER_DATABASE_URL", "redis://localhost:6379/2"
        ),
        ledger_node_url=os.environ.get(
            "LEDGER_NODE_URL",
            NETWORK_NODE_URLS.get(ledger_network, NETWORK_NODE_URLS["testnet"]),
        ),
        ledger_network=ledger_network,
        contract_address=contract_address,
        video_id=video_id,
        on_chain_video_id=os.environ.get("VIEWER_ON_CHAIN_VIDEO_ID") or None,
        prepaid_segments=int(prepaid_str)
        if prepaid_str is not None
        else DEFAULT_PREPAID_SEGMENTS,
        use_session_key=session_key_str.lower() == "true"
        if session_key_str is not None
        else False,
        max_retries=int(max_retries_str) if max_retries_str is not None else 3,
        retry_base_delay=float(base_delay_str) if base_delay_str is not None else 1.0,
        retry_max_delay=float(max_delay_str) if max_delay_str is not None else 30.0,
        key_cache_ttl_seconds=float(cache_ttl_str)
        if cache_ttl_str is not None
        else 300.0,
    )
