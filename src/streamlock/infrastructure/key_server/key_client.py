"""HTTP client for the key-release endpoint."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any, Optional, Type

import httpx

from ...application.creator.dtos import PaymentClaimDTO
from ...domain.constants import PAYMENT_HEADER
from ..http.http_client import AsyncHttpClient


@dataclass
class KeyServerResponse:
    status_code: int
    body: dict[str, Any] = field(default_factory=dict)


class KeyServerClient:
    """Fetches segment keys. Status codes are returned, not raised.

    Transport failures surface as ``HttpRequestError``.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._http = AsyncHttpClient(base_url, timeout=timeout, transport=transport)

    async def request_key(
        self,
        video_id: str,
        segment_index: int,
        claim: Optional[PaymentClaimDTO] = None,
    ) -> KeyServerResponse:
        headers: dict[str, str] = {}
        if claim is not None:
            headers[PAYMENT_HEADER] = json.dumps(
                {"txHash": claim.tx_hash, "network": claim.network}
            )
        resp = await self._http.request(
            "GET", f"/videos/{video_id}/key/{segment_index}", headers=headers
        )
        try:
            body = resp.json()
        except ValueError:
            body = {"error": resp.text}
        if not isinstance(body, dict):
            body = {"error": "unexpected response body", "raw": body}
        return KeyServerResponse(status_code=resp.status_code, body=body)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "KeyServerClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        await self.aclose()
