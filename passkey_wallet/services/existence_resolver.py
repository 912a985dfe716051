"""
Existence resolution for smart wallets.

Lookups are an ordered list of strategies sharing one contract: each returns the
candidate wallets it found, and an empty list means "inconclusive". Lookup
failures are logged and also count as inconclusive; only a verified match makes
a wallet EXISTING.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from ..utils.enums import LookupStrategyEnum, WalletStateEnum
from .credential_normalizer import NormalizedCredential
from .identity_service import WalletIdentity
from .ledger_client import AccountInfo, LedgerClient, LedgerError, WalletCandidate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SmartWalletAccount:
    address: Optional[str]
    identity: WalletIdentity
    state: WalletStateEnum
    owner: Optional[str] = None
    possibly_foreign: bool = False
    found_by: Optional[LookupStrategyEnum] = None

    @property
    def wallet_id(self) -> int:
        return self.identity.wallet_id


LookupStrategy = Callable[[LedgerClient, WalletIdentity, NormalizedCredential], Awaitable[List[WalletCandidate]]]


async def lookup_by_identity(
    ledger: LedgerClient, identity: WalletIdentity, normalized: NormalizedCredential
) -> List[WalletCandidate]:
    return [WalletCandidate(address=ledger.derive_wallet_address(identity.wallet_id), wallet_id=identity.wallet_id)]


async def lookup_by_credential(
    ledger: LedgerClient, identity: WalletIdentity, normalized: NormalizedCredential
) -> List[WalletCandidate]:
    if not ledger.supports_wallet_index:
        return []
    return await ledger.find_wallets_by_credential(normalized.credential_id)


async def lookup_by_public_key(
    ledger: LedgerClient, identity: WalletIdentity, normalized: NormalizedCredential
) -> List[WalletCandidate]:
    if not ledger.supports_wallet_index:
        return []
    return await ledger.find_wallets_by_passkey(normalized.public_key)


DEFAULT_STRATEGIES = (
    (LookupStrategyEnum.BY_IDENTITY, lookup_by_identity),
    (LookupStrategyEnum.BY_CREDENTIAL, lookup_by_credential),
    (LookupStrategyEnum.BY_PUBLIC_KEY, lookup_by_public_key),
)

# A deterministic-address hit is authoritative even when the owner differs:
# creating at that address again would fail anyway.
AUTHORITATIVE_STRATEGIES = (LookupStrategyEnum.BY_IDENTITY,)


class ExistenceResolver:
    def __init__(self, ledger: LedgerClient, strategies=DEFAULT_STRATEGIES):
        self.ledger = ledger
        self.strategies = strategies

    async def _verify(self, address: str) -> Optional[AccountInfo]:
        try:
            return await self.ledger.get_account(address)
        except LedgerError as exc:
            logger.info("[PROVISION] Could not verify wallet %s: %s", address, exc)
            return None

    def _account(
        self,
        identity: WalletIdentity,
        candidate: WalletCandidate,
        info: AccountInfo,
        strategy: LookupStrategyEnum,
    ) -> SmartWalletAccount:
        if candidate.wallet_id is not None and candidate.wallet_id != identity.wallet_id:
            identity = WalletIdentity(wallet_id=candidate.wallet_id, seed=None, source=identity.source)
        return SmartWalletAccount(
            address=candidate.address,
            identity=identity,
            state=WalletStateEnum.EXISTING,
            owner=info.owner,
            possibly_foreign=info.owner != self.ledger.program_id,
            found_by=strategy,
        )

    async def resolve(self, identity: WalletIdentity, normalized: NormalizedCredential) -> SmartWalletAccount:
        fallback: Optional[SmartWalletAccount] = None

        for name, strategy in self.strategies:
            try:
                candidates = await strategy(self.ledger, identity, normalized)
            except LedgerError as exc:
                logger.info("[PROVISION] %s lookup inconclusive: %s", name.value, exc)
                continue

            if not candidates:
                logger.info("[PROVISION] %s lookup found no wallet", name.value)
                continue

            for candidate in candidates:
                info = await self._verify(candidate.address)
                if info is None:
                    continue
                account = self._account(identity, candidate, info, name)
                if name in AUTHORITATIVE_STRATEGIES or not account.possibly_foreign:
                    logger.info(
                        "[PROVISION] Found existing wallet %s via %s (owner=%s)",
                        account.address,
                        name.value,
                        info.owner,
                    )
                    return account
                if fallback is None:
                    fallback = account

        if fallback is not None:
            logger.warning(
                "[PROVISION] Using wallet %s found via %s; it is not owned by the smart wallet program (owner=%s)",
                fallback.address,
                fallback.found_by.value,
                fallback.owner,
            )
            return fallback

        return SmartWalletAccount(address=None, identity=identity, state=WalletStateEnum.ABSENT)
