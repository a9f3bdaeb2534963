"""Ed25519 request signatures for creator-only routes.

A signed request carries three headers:

- ``X-Creator-Public-Key``: hex Ed25519 public key of the creator account.
- ``X-Signature-Timestamp``: unix seconds when the request was signed.
- ``X-Signature``: hex signature over ``method\\npath\\ntimestamp\\nbody``.

The creator address derived from the public key is attached to
``request.state.creator_address``. Routes read it through
``authenticated_creator`` and never trust an address sent in the body.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ..domain.shared.ledger_client_protocol import LedgerSigner
from ..infrastructure.ledger.account import address_from_public_key, verify_signature

logger = logging.getLogger(__name__)

PUBLIC_KEY_HEADER = "X-Creator-Public-Key"
SIGNATURE_HEADER = "X-Signature"
TIMESTAMP_HEADER = "X-Signature-Timestamp"

DEFAULT_MAX_CLOCK_SKEW_SECONDS = 300


def _request_target(path: str, query: str = "") -> str:
    return f"{path}?{query}" if query else path


def signing_message(method: str, target: str, timestamp: str, body: bytes) -> bytes:
    return b"\n".join(
        [method.upper().encode(), target.encode(), timestamp.encode(), body]
    )


def signed_request_headers(
    signer: LedgerSigner,
    method: str,
    target: str,
    body: bytes = b"",
    timestamp: Optional[int] = None,
) -> dict[str, str]:
    """Headers that authenticate ``method target`` with ``body`` as ``signer``."""
    ts = str(int(time.time()) if timestamp is None else timestamp)
    signature = signer.sign(signing_message(method, target, ts, body))
    return {
        PUBLIC_KEY_HEADER: signer.public_key_hex,
        SIGNATURE_HEADER: "0x" + signature.hex(),
        TIMESTAMP_HEADER: ts,
    }


def _decode_hex(value: str) -> bytes:
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


class Ed25519SignatureMiddleware(BaseHTTPMiddleware):
    """Reject mutating requests under ``protected_prefixes`` unless signed."""

    def __init__(
        self,
        app,
        protected_prefixes: Iterable[str],
        max_clock_skew_seconds: int = DEFAULT_MAX_CLOCK_SKEW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(app)
        self._protected_prefixes = tuple(protected_prefixes)
        self._protected_methods = {"POST", "PUT", "PATCH", "DELETE"}
        self._max_clock_skew_seconds = max_clock_skew_seconds
        self._clock = clock

    async def dispatch(self, request: Request, call_next: Callable):
        if self._should_skip(request):
            return await call_next(request)

        public_key_hex = request.headers.get(PUBLIC_KEY_HEADER)
        signature_hex = request.headers.get(SIGNATURE_HEADER)
        timestamp = request.headers.get(TIMESTAMP_HEADER)
        if not public_key_hex or not signature_hex or not timestamp:
            return self._unauthorized(
                f"Missing {PUBLIC_KEY_HEADER}, {SIGNATURE_HEADER} "
                f"or {TIMESTAMP_HEADER} header"
            )

        try:
            public_key = _decode_hex(public_key_hex)
            signature = _decode_hex(signature_hex)
            signed_at = int(timestamp)
        except ValueError:
            return self._bad_request("Malformed signature headers (expected hex)")

        if abs(self._clock() - signed_at) > self._max_clock_skew_seconds:
            return self._unauthorized("Signature timestamp outside allowed window")

        body = await request.body()
        target = _request_target(request.url.path, request.url.query)
        message = signing_message(request.method, target, timestamp, body)
        if not verify_signature(public_key, message, signature):
            logger.info("Rejected unsigned %s %s", request.method, target)
            return self._unauthorized("Invalid Ed25519 signature for request")

        request.state.creator_address = address_from_public_key(public_key)
        return await call_next(request)

    def _should_skip(self, request: Request) -> bool:
        return request.method.upper() not in self._protected_methods or not any(
            request.url.path.startswith(p) for p in self._protected_prefixes
        )

    def _json_error(self, status_code: int, detail: str) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"detail": detail})

    def _bad_request(self, detail: str) -> JSONResponse:
        return self._json_error(status.HTTP_400_BAD_REQUEST, detail)

    def _unauthorized(self, detail: str) -> JSONResponse:
        return self._json_error(status.HTTP_401_UNAUTHORIZED, detail)


def authenticated_creator(request: Request) -> str:
    """Address proven by the request signature."""
    address = getattr(request.state, "creator_address", None)
    if address is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Request is not signed by a creator key",
        )
    return address
