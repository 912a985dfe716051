import logging

from ..utils.enums import WalletStateEnum
from .existence_resolver import SmartWalletAccount
from .identity_service import WalletIdentity
from .ledger_client import LedgerClient

logger = logging.getLogger(__name__)


class ConflictReconciler:
    """
    Turns an "account already in use" failure into an idempotent success.

    The failure proves the account at the deterministic address exists, so the
    address is re-derived and returned without another ledger round trip.
    """

    def __init__(self, ledger: LedgerClient):
        self.ledger = ledger

    def reconcile(self, identity: WalletIdentity) -> SmartWalletAccount:
        address = self.ledger.derive_wallet_address(identity.wallet_id)
        logger.info("[PROVISION] Reconciled smartWalletId %s to existing wallet %s", identity.wallet_id, address)
        return SmartWalletAccount(address=address, identity=identity, state=WalletStateEnum.EXISTING)
