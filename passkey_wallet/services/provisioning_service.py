import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..utils.enums import SubmissionOutcomeEnum, WalletStateEnum
from ..utils.errors import MissingField, SubmissionFailure
from .conflict_reconciler import ConflictReconciler
from .credential_normalizer import extract_wallet_id_hint, normalize
from .existence_resolver import ExistenceResolver, SmartWalletAccount
from .identity_service import derive_identity
from .ledger_client import LedgerClient
from .provisioning_submitter import ProvisioningSubmitter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProvisioningResult:
    wallet_address: str
    wallet_id: int
    existing: bool

    def to_response(self) -> Dict[str, Any]:
        body = {
            "ok": True,
            "walletAddress": self.wallet_address,
            "smartWalletId": str(self.wallet_id),
        }
        if self.existing:
            body["existing"] = True
        return body


class ProvisioningService:
    def __init__(self, ledger: LedgerClient):
        self.ledger = ledger
        self.resolver = ExistenceResolver(ledger)
        self.submitter = ProvisioningSubmitter(ledger)
        self.reconciler = ConflictReconciler(ledger)

    @staticmethod
    def _result(account: SmartWalletAccount) -> ProvisioningResult:
        return ProvisioningResult(
            wallet_address=account.address,
            wallet_id=account.wallet_id,
            existing=account.state == WalletStateEnum.EXISTING,
        )

    async def provision(
        self,
        passkey_data: Optional[Dict[str, Any]],
        user_private_key: Optional[str] = None,
    ) -> ProvisioningResult:
        if not passkey_data:
            raise MissingField("passkeyData")

        # Input errors surface here, before any ledger I/O
        normalized = normalize(passkey_data)
        identity = derive_identity(normalized, extract_wallet_id_hint(passkey_data))

        account = await self.resolver.resolve(identity, normalized)
        if account.state == WalletStateEnum.EXISTING:
            return self._result(account)

        submission = await self.submitter.submit(identity, normalized, user_private_key)
        if submission.outcome == SubmissionOutcomeEnum.ALREADY_EXISTED:
            return self._result(self.reconciler.reconcile(identity))

        if submission.account is None or not submission.account.address:
            raise SubmissionFailure("Failed to resolve smart wallet address")
        return self._result(submission.account)
