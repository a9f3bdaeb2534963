"""Protocol interface for ledger client implementations.

Services depend on this instead of the REST client so they can run against an
in-memory ledger in tests.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence

from .ledger_types import LedgerTransaction, TransactionResult


class LedgerSigner(Protocol):
    """An account able to sign transactions."""

    @property
    def address(self) -> str: ...

    @property
    def public_key_hex(self) -> str: ...

    def sign(self, message: bytes) -> bytes: ...


class LedgerClientProtocol(Protocol):
    """Minimal ledger surface used by the key server and the viewer.

    Implementations raise ``LedgerAccessError`` for transport failures and
    ``ContractError`` when a submitted transaction aborts.
    """

    network: str

    async def get_transaction(self, tx_hash: str) -> Optional[LedgerTransaction]:
        """Fetch a transaction by hash.

        Returns:
            The transaction, or None if the ledger does not know the hash.
        """
        ...

    async def submit_entry_function(
        self,
        signer: LedgerSigner,
        function: str,
        arguments: Sequence[Any],
        type_arguments: Sequence[str] = (),
    ) -> TransactionResult:
        """Sign, submit and wait for an entry function call."""
        ...

    async def transfer(
        self, signer: LedgerSigner, recipient: str, amount: int
    ) -> TransactionResult:
        """Transfer native coin from ``signer`` to ``recipient``."""
        ...

    async def get_balance(self, address: str) -> int:
        """Native coin balance of ``address`` (0 if the account is unknown)."""
        ...

    async def view(
        self,
        function: str,
        arguments: Sequence[Any],
        type_arguments: Sequence[str] = (),
    ) -> list[Any]:
        """Call a view function."""
        ...

    async def aclose(self) -> None: ...
