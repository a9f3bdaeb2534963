"""Domain-specific exceptions.

Every error carries a stable machine-readable ``code`` and a ``details``
mapping so API layers and players can render exact amounts and indices.
"""

from __future__ import annotations

from typing import Any, Optional


class StreamLockError(Exception):
    """Base class for all protocol errors."""

    code: str = "STREAMLOCK_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details: dict[str, Any] = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code, "details": self.details}


# Validation: rejected immediately, never retried automatically.


class ValidationError(StreamLockError, ValueError):
    """Raised for malformed input (bad index, address or payment claim)."""

    code = "VALIDATION_ERROR"


class InvalidSegmentIndexError(ValidationError):
    code = "INVALID_SEGMENT_INDEX"

    def __init__(self, segment_index: int, total_segments: Optional[int] = None):
        if total_segments is None:
            message = f"Invalid segment index: {segment_index}"
        else:
            message = (
                f"Invalid segment index: {segment_index} "
                f"(expected 0 <= index < {total_segments})"
            )
        super().__init__(
            message,
            details={"segment_index": segment_index, "total_segments": total_segments},
        )
        self.segment_index = segment_index


class InvalidAddressError(ValidationError):
    code = "INVALID_ADDRESS"

    def __init__(self, address: str):
        super().__init__(
            f"Invalid account address: {address}", details={"address": address}
        )


class MalformedPaymentClaimError(ValidationError):
    code = "MALFORMED_PAYMENT_CLAIM"


# Verification: "pay and retry".


class VerificationError(StreamLockError):
    """Payment could not be confirmed."""

    code = "VERIFICATION_ERROR"
    transient: bool = False


class PaymentVerificationError(VerificationError):
    code = "PAYMENT_VERIFICATION_FAILED"

    def __init__(self, tx_hash: str, reason: str):
        super().__init__(
            f"Payment verification failed: {reason}",
            details={"tx_hash": tx_hash, "reason": reason},
        )
        self.tx_hash = tx_hash
        self.reason = reason


class LedgerAccessError(VerificationError):
    """Ledger node unreachable or returned an unusable response."""

    code = "LEDGER_ACCESS_ERROR"
    transient = True


# Integrity: fatal for the key, never cached.


class IntegrityError(StreamLockError):
    code = "INTEGRITY_ERROR"


class InvalidProofError(IntegrityError):
    code = "INVALID_PROOF"

    def __init__(self, segment_index: int, reason: str = "proof does not match"):
        super().__init__(
            f"Invalid Merkle proof for segment {segment_index}: {reason}",
            details={"segment_index": segment_index, "reason": reason},
        )
        self.segment_index = segment_index


# Escrow.


class EscrowError(StreamLockError):
    code = "ESCROW_ERROR"


class InsufficientBalanceError(EscrowError):
    code = "INSUFFICIENT_BALANCE"

    def __init__(self, required: int, available: int):
        super().__init__(
            f"Insufficient balance: required {required}, available {available}",
            details={"required": required, "available": available},
        )
        self.required = required
        self.available = available


class SessionExpiredError(EscrowError):
    code = "SESSION_EXPIRED"

    def __init__(self, session_id: str):
        super().__init__(
            f"Session expired: {session_id}", details={"session_id": session_id}
        )
        self.session_id = session_id


class SessionNotFoundError(EscrowError):
    code = "SESSION_NOT_FOUND"

    def __init__(self, session_id: str):
        super().__init__(
            f"Session not found: {session_id}", details={"session_id": session_id}
        )


# Catalogue.


class VideoNotFoundError(StreamLockError):
    code = "VIDEO_NOT_FOUND"

    def __init__(self, video_id: str):
        super().__init__(f"Video not found: {video_id}", details={"video_id": video_id})
        self.video_id = video_id


class VideoNotActiveError(StreamLockError):
    code = "VIDEO_NOT_ACTIVE"

    def __init__(self, video_id: str):
        super().__init__(
            f"Video is not active: {video_id}", details={"video_id": video_id}
        )
        self.video_id = video_id


class EncryptionError(StreamLockError):
    code = "ENCRYPTION_ERROR"


class DecryptionError(StreamLockError):
    code = "DECRYPTION_ERROR"


class KeyLoaderClosedError(StreamLockError):
    code = "KEY_LOADER_CLOSED"

    def __init__(self) -> None:
        super().__init__("Key loader has been closed")


# Contract aborts.

_ABORT_MESSAGES: dict[int, str] = {
    1: "Creator not registered",
    2: "Creator already registered",
    3: "Video not found",
    4: "Video not active",
    5: "Session not found",
    6: "Session expired",
    7: "Invalid segment index",
    8: "Insufficient balance",
    9: "Unauthorized",
    10: "Invalid proof",
    11: "Dispute exists",
    12: "Invalid commitment",
    13: "Protocol paused",
    14: "Price too low",
    15: "Segment already paid",
}

ABORT_SEGMENT_ALREADY_PAID = 15


class ContractError(StreamLockError):
    """A ledger transaction aborted inside the protocol module."""

    code = "CONTRACT_ERROR"

    def __init__(self, abort_code: int, message: str, tx_hash: Optional[str] = None):
        super().__init__(
            message, details={"abort_code": abort_code, "tx_hash": tx_hash}
        )
        self.abort_code = abort_code
        self.tx_hash = tx_hash

    @classmethod
    def from_abort_code(
        cls, abort_code: int, tx_hash: Optional[str] = None
    ) -> "ContractError":
        if abort_code == ABORT_SEGMENT_ALREADY_PAID:
            return SegmentAlreadyPaidError(tx_hash=tx_hash)
        message = _ABORT_MESSAGES.get(abort_code, f"Unknown error code: {abort_code}")
        return cls(abort_code, message, tx_hash=tx_hash)


class SegmentAlreadyPaidError(ContractError):
    code = "SEGMENT_ALREADY_PAID"

    def __init__(
        self, segment_index: Optional[int] = None, tx_hash: Optional[str] = None
    ):
        message = (
            "Segment already paid"
            if segment_index is None
            else f"Segment already paid: {segment_index}"
        )
        super().__init__(ABORT_SEGMENT_ALREADY_PAID, message, tx_hash=tx_hash)
        self.details["segment_index"] = segment_index
        self.segment_index = segment_index
