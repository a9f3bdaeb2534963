"""Unit tests for creator video API routes."""

import json
import time
import unittest
from datetime import datetime, timezone
from unittest.mock import AsyncMock

from fastapi import FastAPI
from fastapi.testclient import TestClient

from streamlock.api.key_server.dependencies import get_video_registration_service
from streamlock.api.key_server.routers.videos import router
from streamlock.application.creator.dtos import (
    RegisteredVideoDTO,
    UpdatePriceDTO,
    VideoResponseDTO,
)
from streamlock.domain.errors import ContractError, VideoNotFoundError
from streamlock.infrastructure.ledger.account import Ed25519Account
from streamlock.middleware.ed25519 import (
    Ed25519SignatureMiddleware,
    signed_request_headers,
)


class TestVideosRouter(unittest.TestCase):
    """Test cases for videos router."""

    def setUp(self):
        """Set up test fixtures."""
        self.app = FastAPI()
        self.app.add_middleware(
            Ed25519SignatureMiddleware, protected_prefixes=("/api/v1/videos",)
        )
        self.app.include_router(router, prefix="/api/v1")
        self.creator = Ed25519Account.generate()

        self.video_response = VideoResponseDTO(
            video_id="bbb",
            creator_address=self.creator.address,
            on_chain_video_id="7",
            total_segments=8,
            price_per_segment=100,
            commitment_root="ab" * 32,
            segment_duration=5.0,
            content_uri="ipfs://bbb",
            thumbnail_uri="",
            duration_seconds=40,
            is_active=True,
            created_at=datetime.now(timezone.utc),
            updated_at=None,
        )

        self.mock_service = AsyncMock()
        self.app.dependency_overrides[get_video_registration_service] = (
            lambda: self.mock_service
        )
        self.client = TestClient(self.app)

    def tearDown(self):
        """Clean up after tests."""
        self.app.dependency_overrides.clear()

    def _send(self, method, path, payload=None, signer=None, timestamp=None):
        body = b"" if payload is None else json.dumps(payload).encode()
        headers = signed_request_headers(
            signer or self.creator, method, path, body, timestamp=timestamp
        )
        headers["Content-Type"] = "application/json"
        return self.client.request(method, path, content=body, headers=headers)

    def test_register_video_success(self):
        """Test successful video registration."""
        # Arrange
        self.mock_service.register_video.return_value = RegisteredVideoDTO(
            video=self.video_response, playlist="#EXTM3U\n", tx_hash="0x01"
        )
        payload = {"video_id": "bbb", "total_segments": 8, "price_per_segment": 100}

        # Act
        response = self._send("POST", "/api/v1/videos/", payload)

        # Assert
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["video"]["commitment_root"], "ab" * 32)
        self.assertEqual(response.json()["tx_hash"], "0x01")
        dto, creator_address = self.mock_service.register_video.call_args.args
        self.assertEqual(dto.video_id, "bbb")
        self.assertEqual(creator_address, self.creator.address)

    def test_register_video_validation(self):
        """Test that non-positive sizes and prices are rejected."""
        for payload in (
            {"video_id": "bbb", "total_segments": 0, "price_per_segment": 100},
            {"video_id": "bbb", "total_segments": 8, "price_per_segment": 0},
            {"video_id": "", "total_segments": 8, "price_per_segment": 100},
        ):
            response = self._send("POST", "/api/v1/videos/", payload)
            self.assertEqual(response.status_code, 422)
        self.mock_service.register_video.assert_not_called()

    def test_register_duplicate_returns_409(self):
        self.mock_service.register_video.side_effect = ValueError("exists")

        response = self._send(
            "POST",
            "/api/v1/videos/",
            {"video_id": "bbb", "total_segments": 8, "price_per_segment": 100},
        )

        self.assertEqual(response.status_code, 409)

    def test_register_by_foreign_creator_returns_403(self):
        self.mock_service.register_video.side_effect = PermissionError("not ours")

        response = self._send(
            "POST",
            "/api/v1/videos/",
            {"video_id": "bbb", "total_segments": 8, "price_per_segment": 100},
        )

        self.assertEqual(response.status_code, 403)

    def test_register_contract_failure_returns_502(self):
        self.mock_service.register_video.side_effect = ContractError(9, "Unauthorized")

        response = self._send(
            "POST",
            "/api/v1/videos/",
            {"video_id": "bbb", "total_segments": 8, "price_per_segment": 100},
        )

        self.assertEqual(response.status_code, 502)

    def test_unsigned_register_is_rejected(self):
        response = self.client.post(
            "/api/v1/videos/",
            json={"video_id": "bbb", "total_segments": 8, "price_per_segment": 100},
        )

        self.assertEqual(response.status_code, 401)
        self.mock_service.register_video.assert_not_called()

    def test_list_videos(self):
        self.mock_service.list_videos.return_value = [self.video_response]

        response = self.client.get("/api/v1/videos/?skip=5&limit=10")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()[0]["video_id"], "bbb")
        self.mock_service.list_videos.assert_called_once_with(skip=5, limit=10)

    def test_get_video(self):
        self.mock_service.get_video.return_value = self.video_response

        response = self.client.get("/api/v1/videos/bbb")

        self.assertEqual(response.status_code, 200)
        self.mock_service.get_video.assert_called_once_with("bbb")

    def test_get_video_not_found(self):
        self.mock_service.get_video.side_effect = VideoNotFoundError("nope")

        response = self.client.get("/api/v1/videos/nope")

        self.assertEqual(response.status_code, 404)

    def test_get_playlist(self):
        """Test that the playlist is served as an HLS document."""
        self.mock_service.get_playlist.return_value = "#EXTM3U\n#EXT-X-ENDLIST\n"

        response = self.client.get("/api/v1/videos/bbb/playlist.m3u8")

        self.assertEqual(response.status_code, 200)
        self.assertTrue(
            response.headers["content-type"].startswith("application/vnd.apple.mpegurl")
        )
        self.assertEqual(response.text, "#EXTM3U\n#EXT-X-ENDLIST\n")

    def test_update_price(self):
        # Arrange
        updated = self.video_response.model_copy(update={"price_per_segment": 250})
        self.mock_service.update_price.return_value = updated

        # Act
        response = self._send(
            "PATCH", "/api/v1/videos/bbb/price", {"price_per_segment": 250}
        )

        # Assert
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["price_per_segment"], 250)
        self.mock_service.update_price.assert_called_once_with(
            "bbb", UpdatePriceDTO(price_per_segment=250), self.creator.address
        )

    def test_update_price_by_other_creator_returns_403(self):
        self.mock_service.update_price.side_effect = PermissionError("not owner")

        response = self._send(
            "PATCH",
            "/api/v1/videos/bbb/price",
            {"price_per_segment": 250},
            signer=Ed25519Account.generate(),
        )

        self.assertEqual(response.status_code, 403)

    def test_unsigned_price_change_is_rejected(self):
        response = self.client.patch(
            "/api/v1/videos/bbb/price", json={"price_per_segment": 1}
        )

        self.assertEqual(response.status_code, 401)
        self.mock_service.update_price.assert_not_called()

    def test_tampered_body_is_rejected(self):
        """A signature over one body does not authorize another."""
        headers = signed_request_headers(
            self.creator,
            "PATCH",
            "/api/v1/videos/bbb/price",
            json.dumps({"price_per_segment": 250}).encode(),
        )
        headers["Content-Type"] = "application/json"

        response = self.client.patch(
            "/api/v1/videos/bbb/price",
            content=json.dumps({"price_per_segment": 1}).encode(),
            headers=headers,
        )

        self.assertEqual(response.status_code, 401)
        self.mock_service.update_price.assert_not_called()

    def test_signature_for_other_path_is_rejected(self):
        headers = signed_request_headers(
            self.creator, "POST", "/api/v1/videos/other/deactivation"
        )

        response = self.client.post("/api/v1/videos/bbb/deactivation", headers=headers)

        self.assertEqual(response.status_code, 401)
        self.mock_service.deactivate_video.assert_not_called()

    def test_stale_signature_is_rejected(self):
        response = self._send(
            "POST",
            "/api/v1/videos/bbb/deactivation",
            timestamp=int(time.time()) - 3600,
        )

        self.assertEqual(response.status_code, 401)
        self.mock_service.deactivate_video.assert_not_called()

    def test_malformed_signature_header_returns_400(self):
        headers = signed_request_headers(
            self.creator, "POST", "/api/v1/videos/bbb/deactivation"
        )
        headers["X-Signature"] = "not-hex"

        response = self.client.post("/api/v1/videos/bbb/deactivation", headers=headers)

        self.assertEqual(response.status_code, 400)

    def test_deactivate_video(self):
        deactivated = self.video_response.model_copy(update={"is_active": False})
        self.mock_service.deactivate_video.return_value = deactivated

        response = self._send("POST", "/api/v1/videos/bbb/deactivation")

        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["is_active"])
        self.mock_service.deactivate_video.assert_called_once_with(
            "bbb", self.creator.address
        )

    def test_deactivate_unknown_video_returns_404(self):
        self.mock_service.deactivate_video.side_effect = VideoNotFoundError("nope")

        response = self._send("POST", "/api/v1/videos/nope/deactivation")

        self.assertEqual(response.status_code, 404)


if __name__ == "__main__":
    unittest.main()
