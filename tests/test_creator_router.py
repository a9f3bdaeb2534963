"""Unit tests for creator earnings API routes."""

import unittest
from unittest.mock import AsyncMock

from fastapi import FastAPI
from fastapi.testclient import TestClient

from streamlock.api.key_server.dependencies import get_creator_earnings_service
from streamlock.api.key_server.routers.creator import router
from streamlock.application.creator.dtos import CreatorEarningsDTO, WithdrawalDTO
from streamlock.domain.errors import (
    ContractError,
    InvalidAddressError,
    LedgerAccessError,
)
from streamlock.infrastructure.ledger.account import Ed25519Account
from streamlock.middleware.ed25519 import (
    Ed25519SignatureMiddleware,
    signed_request_headers,
)


class TestCreatorRouter(unittest.TestCase):
    """Test cases for creator router."""

    def setUp(self):
        self.app = FastAPI()
        self.app.add_middleware(
            Ed25519SignatureMiddleware, protected_prefixes=("/api/v1/creator",)
        )
        self.app.include_router(router, prefix="/api/v1")
        self.creator = Ed25519Account.generate()

        self.mock_service = AsyncMock()
        self.app.dependency_overrides[get_creator_earnings_service] = (
            lambda: self.mock_service
        )
        self.client = TestClient(self.app)

    def tearDown(self):
        self.app.dependency_overrides.clear()

    def test_get_earnings(self):
        self.mock_service.get_earnings.return_value = CreatorEarningsDTO(
            creator_address=self.creator.address,
            is_registered=True,
            total_earnings=300,
            pending_withdrawal=200,
            total_videos=1,
        )

        response = self.client.get(f"/api/v1/creator/{self.creator.address}/earnings")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["pending_withdrawal"], 200)
        self.mock_service.get_earnings.assert_called_once_with(self.creator.address)

    def test_get_earnings_invalid_address(self):
        self.mock_service.get_earnings.side_effect = InvalidAddressError("nope")

        response = self.client.get("/api/v1/creator/nope/earnings")

        self.assertEqual(response.status_code, 400)

    def test_get_earnings_ledger_unavailable(self):
        self.mock_service.get_earnings.side_effect = LedgerAccessError("down")

        response = self.client.get(f"/api/v1/creator/{self.creator.address}/earnings")

        self.assertEqual(response.status_code, 503)

    def test_withdraw_uses_signing_creator(self):
        # Arrange
        self.mock_service.withdraw.return_value = WithdrawalDTO(
            creator_address=self.creator.address, amount=200, tx_hash="0x01"
        )
        headers = signed_request_headers(
            self.creator, "POST", "/api/v1/creator/withdrawal"
        )

        # Act
        response = self.client.post("/api/v1/creator/withdrawal", headers=headers)

        # Assert
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["amount"], 200)
        self.mock_service.withdraw.assert_called_once_with(self.creator.address)

    def test_unsigned_withdraw_is_rejected(self):
        response = self.client.post("/api/v1/creator/withdrawal")

        self.assertEqual(response.status_code, 401)
        self.mock_service.withdraw.assert_not_called()

    def test_withdraw_by_other_creator_returns_403(self):
        self.mock_service.withdraw.side_effect = PermissionError("not configured")
        headers = signed_request_headers(
            Ed25519Account.generate(), "POST", "/api/v1/creator/withdrawal"
        )

        response = self.client.post("/api/v1/creator/withdrawal", headers=headers)

        self.assertEqual(response.status_code, 403)

    def test_withdraw_contract_abort_returns_409(self):
        self.mock_service.withdraw.side_effect = ContractError(1, "Not registered")
        headers = signed_request_headers(
            self.creator, "POST", "/api/v1/creator/withdrawal"
        )

        response = self.client.post("/api/v1/creator/withdrawal", headers=headers)

        self.assertEqual(response.status_code, 409)


if __name__ == "__main__":
    unittest.main()
