"""Shared domain utilities.

This package is domain-accessible and should not depend on application code.
"""

from .ledger_client_protocol import LedgerClientProtocol, LedgerSigner
from .ledger_types import (
    ContractEvent,
    LedgerTransaction,
    OnChainSession,
    OnChainVideo,
    TransactionResult,
)

__all__ = [
    "ContractEvent",
    "LedgerClientProtocol",
    "LedgerSigner",
    "LedgerTransaction",
    "OnChainSession",
    "OnChainVideo",
    "TransactionResult",
]
