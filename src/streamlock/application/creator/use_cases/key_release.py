"""Payment-gated key release for a single segment."""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Optional, Union

from pydantic import ValidationError as PydanticValidationError

from ....crypto.commitment import bytes_to_b64, hash_key
from ....crypto.keys import derive_segment_key_pair
from ....domain.constants import (
    APTOS_COIN,
    PAY_FOR_SEGMENT_FUNCTION,
    PAYMENT_SCHEME,
    PROTOCOL_VERSION,
    X402_VERSION,
    entry_function_id,
)
from ....domain.creator.entities import Video
from ....domain.creator.secret_store import CommitmentTreeStore, MasterSecretStore
from ....domain.creator.video_repository import VideoRepository
from ....domain.errors import (
    IntegrityError,
    InvalidSegmentIndexError,
    MalformedPaymentClaimError,
    VideoNotActiveError,
    VideoNotFoundError,
)
from ..dtos import (
    KeyResponseDTO,
    MerkleProofDTO,
    PaymentClaimDTO,
    PaymentExtraDTO,
    PaymentOptionDTO,
    PaymentRequiredDTO,
)
from .payment_verifier import PaymentVerifier

logger = logging.getLogger(__name__)


class KeyRequestState(str, Enum):
    UNCHALLENGED = "unchallenged"
    CLAIM_RECEIVED = "claim_received"
    VERIFYING = "verifying"
    AUTHORIZED = "authorized"


KeyRequestOutcome = Union[KeyResponseDTO, PaymentRequiredDTO]


class KeyReleaseService:
    """Challenges for payment or releases a committed segment key.

    Stateless per request: the same (video, segment, claim) can be replayed
    and yields the same key and proof.
    """

    def __init__(
        self,
        video_repository: VideoRepository,
        secret_store: MasterSecretStore,
        tree_store: CommitmentTreeStore,
        payment_verifier: PaymentVerifier,
        *,
        network: str,
        contract_address: str,
        payment_resource: str = APTOS_COIN,
    ):
        self.video_repository = video_repository
        self.secret_store = secret_store
        self.tree_store = tree_store
        self.payment_verifier = payment_verifier
        self.network = network
        self.contract_address = contract_address
        self.payment_resource = payment_resource

    async def get_releasable_video(self, video_id: str, segment_index: int) -> Video:
        """Check the preconditions that apply before any state transition."""
        video = await self.video_repository.get_by_id(video_id)
        if video is None:
            raise VideoNotFoundError(video_id)
        if not video.is_active:
            raise VideoNotActiveError(video_id)
        if not video.is_valid_segment(segment_index):
            raise InvalidSegmentIndexError(segment_index, video.total_segments)
        return video

    def build_payment_challenge(
        self,
        video: Video,
        segment_index: int,
        *,
        error: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> PaymentRequiredDTO:
        return PaymentRequiredDTO(
            protocol_version=PROTOCOL_VERSION,
            x402_version=X402_VERSION,
            error=error,
            accepts=[
                PaymentOptionDTO(
                    scheme=PAYMENT_SCHEME,
                    network=self.network,
                    max_amount_required=str(video.price_per_segment),
                    resource=self.payment_resource,
                    pay_to=video.creator_address,
                    description=f"Segment {segment_index} of {video.video_id}",
                    extra=PaymentExtraDTO(
                        video_id=video.ledger_video_id,
                        segment_index=segment_index,
                        session_id=session_id,
                        contract_address=self.contract_address,
                        function=entry_function_id(
                            self.contract_address, PAY_FOR_SEGMENT_FUNCTION
                        ),
                    ),
                )
            ],
        )

    def parse_payment_claim(self, header_value: str) -> PaymentClaimDTO:
        """Parse an ``X-Payment`` header value.

        Raises:
            MalformedPaymentClaimError: not JSON, missing fields or wrong network.
        """
        try:
            payload = json.loads(header_value)
        except (TypeError, ValueError) as e:
            raise MalformedPaymentClaimError(f"Payment header is not JSON: {e}") from e
        if not isinstance(payload, dict):
            raise MalformedPaymentClaimError("Payment header must be a JSON object")
        try:
            claim = PaymentClaimDTO.model_validate(payload)
        except PydanticValidationError as e:
            raise MalformedPaymentClaimError(
                f"Invalid payment claim: {e.errors(include_url=False)}"
            ) from e
        if claim.network != self.network:
            raise MalformedPaymentClaimError(
                f"Payment claim is for network {claim.network!r}, "
                f"expected {self.network!r}",
                details={"network": claim.network},
            )
        return claim

    async def handle_key_request(
        self,
        video_id: str,
        segment_index: int,
        payment_header: Optional[str],
        *,
        session_id: Optional[str] = None,
    ) -> KeyRequestOutcome:
        """Run one request through the challenge/verify/release states.

        Returns a PaymentRequiredDTO (402) or a KeyResponseDTO (200). Raises
        domain errors for precondition and claim failures.
        """
        video = await self.get_releasable_video(video_id, segment_index)

        state = KeyRequestState.UNCHALLENGED
        if not payment_header:
            logger.debug("%s/%d: %s", video_id, segment_index, state.value)
            return self.build_payment_challenge(
                video, segment_index, session_id=session_id
            )

        state = KeyRequestState.CLAIM_RECEIVED
        claim = self.parse_payment_claim(payment_header)

        state = KeyRequestState.VERIFYING
        verified = await self.payment_verifier.verify(claim, video, segment_index)
        if not verified:
            return self.build_payment_challenge(
                video,
                segment_index,
                error="Payment verification failed",
                session_id=session_id,
            )

        state = KeyRequestState.AUTHORIZED
        logger.info(
            "%s/%d: %s by %s", video_id, segment_index, state.value, claim.tx_hash
        )
        return await self.release_key(video, segment_index)

    async def release_key(self, video: Video, segment_index: int) -> KeyResponseDTO:
        """Derive the key/IV and prove it against the stored commitment."""
        master_secret = await self.secret_store.get(video.video_id)
        if master_secret is None:
            raise RuntimeError(f"Master secret missing for video {video.video_id}")
        tree = await self.tree_store.get(video.video_id)
        if tree is None:
            raise RuntimeError(f"Commitment tree missing for video {video.video_id}")
        if tree.root != video.commitment_root_bytes:
            raise IntegrityError(
                f"Stored commitment for {video.video_id} does not match its root"
            )

        material = derive_segment_key_pair(
            master_secret, video.video_id, segment_index
        )
        proof = tree.prove_index(segment_index)
        if hash_key(material.key) != proof.leaf:
            raise IntegrityError(
                f"Derived key for {video.video_id}/{segment_index} is not committed"
            )

        wire_proof = proof.to_dict()
        return KeyResponseDTO(
            key=bytes_to_b64(material.key),
            iv=bytes_to_b64(material.iv),
            proof=MerkleProofDTO(**wire_proof),
            segment_index=segment_index,
        )
