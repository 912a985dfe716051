"""
Ledger collaborator interface.

Components never talk to the chain directly; they receive a LedgerClient
constructed once at startup. Production uses SolanaRpcLedgerClient, tests use
an in-memory fake.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional

import base58
from solders.keypair import Keypair


class LedgerError(Exception):
    """Base error raised by ledger clients."""


class LedgerUnavailableError(LedgerError):
    """The ledger could not be reached or answered with a transport-level failure."""


class LedgerTransactionError(LedgerError):
    """A broadcast or confirmation failed on the ledger itself."""

    def __init__(self, message: str, *, logs: Optional[List[str]] = None, already_in_use: bool = False):
        super().__init__(message)
        self.message = message
        self.logs = logs or []
        self.already_in_use = already_in_use


@dataclass(frozen=True)
class AccountInfo:
    address: str
    owner: str
    lamports: int
    data: bytes = b""


@dataclass(frozen=True)
class WalletCandidate:
    """A wallet address returned by an index lookup, with its wallet id when the index carries one."""
    address: str
    wallet_id: Optional[int] = None


@dataclass(frozen=True)
class CreateWalletParams:
    payer: str
    passkey_public_key: bytes
    credential_id: bytes
    wallet_id: int
    amount: int


class LedgerClient(ABC):
    program_id: str
    supports_wallet_index: bool = False

    @abstractmethod
    def derive_wallet_address(self, wallet_id: int) -> str:
        """Deterministic wallet address for a wallet id; no network access."""

    @abstractmethod
    async def get_account(self, address: str) -> Optional[AccountInfo]:
        ...

    async def find_wallets_by_credential(self, credential_id: bytes) -> List[WalletCandidate]:
        return []

    async def find_wallets_by_passkey(self, public_key: bytes) -> List[WalletCandidate]:
        return []

    @abstractmethod
    async def get_balance(self, address: str) -> int:
        ...

    @abstractmethod
    async def request_airdrop(self, address: str, lamports: int) -> str:
        """Request a faucet top-up and wait for it to confirm. Returns the signature."""

    @abstractmethod
    async def build_create_wallet_transaction(self, params: CreateWalletParams) -> Any:
        ...

    @abstractmethod
    async def send_and_confirm(self, transaction: Any, signer: Any) -> str:
        """Sign, serialize, broadcast and confirm. Raises LedgerTransactionError on ledger failures."""

    def load_signer(self, secret: str) -> Keypair:
        """Parse a fee-payer secret: base58 (64-byte keypair or 32-byte seed) or a JSON byte array."""
        text = secret.strip()
        if text.startswith("["):
            raw = bytes(json.loads(text))
        else:
            raw = base58.b58decode(text)
        if len(raw) == 64:
            return Keypair.from_bytes(raw)
        if len(raw) == 32:
            return Keypair.from_seed(raw)
        raise ValueError(f"expected a 64-byte secret key, got {len(raw)} bytes")

    def signer_address(self, signer: Keypair) -> str:
        return str(signer.pubkey())

    async def close(self) -> None:
        return None
