from __future__ import annotations

import os
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, field_validator

from ..domain.constants import APTOS_COIN, NETWORK_NODE_URLS
from ..infrastructure.ledger.account import Ed25519Account, is_valid_address
from ..middleware.ed25519 import DEFAULT_MAX_CLOCK_SKEW_SECONDS


def _validate_http_url(v: str, name: str) -> str:
    if not v:
        raise ValueError(f"{name} cannot be empty")
    parsed = urlparse(v)
    if parsed.scheme not in {"http", "https"}:
        raise ValueError(f"{name} must start with http:// or https://")
    if not parsed.netloc:
        raise ValueError(f"{name} must include a host")
    return v.rstrip("/")


class Settings(BaseModel):
    database_url: str

    api_host: str
    api_port: int
    api_debug: bool
    api_workers: int
    api_cors_origins: list[str]

    app_name: str
    app_version: str

    public_base_url: str

    ledger_node_url: str
    ledger_network: str
    contract_address: str
    payment_resource: str = APTOS_COIN

    creator_private_key_hex: Optional[str] = None
    signature_max_clock_skew_seconds: int = DEFAULT_MAX_CLOCK_SKEW_SECONDS

    @field_validator("public_base_url")
    @classmethod
    def validate_public_base_url(cls, v: str) -> str:
        return _validate_http_url(v, "Public base URL")

    @field_validator("ledger_node_url")
    @classmethod
    def validate_ledger_node_url(cls, v: str) -> str:
        return _validate_http_url(v, "Ledger node URL")

    @field_validator("contract_address")
    @classmethod
    def validate_contract_address(cls, v: str) -> str:
        if not is_valid_address(v):
            raise ValueError(f"Invalid contract address: {v!r}")
        return v

    @field_validator("api_workers")
    @classmethod
    def validate_api_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError("API workers must be >= 1")
        return v

    @field_validator("creator_private_key_hex")
    @classmethod
    def validate_creator_private_key_hex(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        try:
            Ed25519Account.from_private_key_hex(v)
        except Exception as e:
            raise ValueError(f"Invalid creator private key: {e}") from e
        return v


def get_settings() -> Settings:
    api_debug_str = os.environ.get("KEY_SERVER_API_DEBUG")
    api_cors_origins_str = os.environ.get("KEY_SERVER_API_CORS_ORIGINS")
    api_port_str = os.environ.get("KEY_SERVER_API_PORT")
    api_workers_str = os.environ.get("KEY_SERVER_API_WORKERS")

    api_host = os.environ.get("KEY_SERVER_API_HOST", "0.0.0.0")
    api_port = int(api_port_str) if api_port_str is not None else 8000
    ledger_network = os.environ.get("LEDGER_NETWORK", "testnet")

    return Settings(
        database_url=os.environ.get(
            "KEY_SERVER_DATABASE_URL", "redis://localhost:6379/0"
        ),
        api_host=api_host,
        api_port=api_port,
        api_debug=api_debug_str.lower() == "true"
        if api_debug_str is not None
        else False,
        api_workers=int(api_workers_str) if api_workers_str is not None else 1,
        api_cors_origins=api_cors_origins_str.split(",")
        if api_cors_origins_str is not None
        else ["*"],
        app_name=os.environ.get("KEY_SERVER_APP_NAME", "StreamLock Key Server"),
        app_version=os.environ.get("KEY_SERVER_APP_VERSION", "0.1.0"),
        public_base_url=os.environ.get(
            "KEY_SERVER_PUBLIC_URL", f"http://localhost:{api_port}/api/v1"
        ),
        ledger_node_url=os.environ.get(
            "LEDGER_NODE_URL",
            NETWORK_NODE_URLS.get(ledger_network, NETWORK_NODE_URLS["testnet"]),
        ),
        ledger_network=ledger_network,
        contract_address=os.environ.get("CONTRACT_ADDRESS", ""),
        payment_resource=os.environ.get("PAYMENT_RESOURCE", APTOS_COIN),
        creator_private_key_hex=os.environ.get("CREATOR_PRIVATE_KEY_HEX"),
        signature_max_clock_skew_seconds=int(
            os.environ.get(
                "KEY_SERVER_SIGNATURE_MAX_SKEW_SECONDS",
                str(DEFAULT_MAX_CLOCK_SKEW_SECONDS),
            )
        ),
    )
