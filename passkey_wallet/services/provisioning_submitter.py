import logging
from dataclasses import dataclass
from typing import Optional

from solders.keypair import Keypair

from ..core.config import settings
from ..utils.enums import SubmissionOutcomeEnum, WalletStateEnum
from ..utils.errors import FormatError, SubmissionFailure, missing_private_key_error, upstream_error
from .credential_normalizer import NormalizedCredential
from .existence_resolver import SmartWalletAccount
from .identity_service import WalletIdentity
from .ledger_client import (
    CreateWalletParams,
    LedgerClient,
    LedgerError,
    LedgerTransactionError,
    LedgerUnavailableError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmissionResult:
    outcome: SubmissionOutcomeEnum
    account: Optional[SmartWalletAccount] = None
    signature: Optional[str] = None


class ProvisioningSubmitter:
    def __init__(self, ledger: LedgerClient):
        self.ledger = ledger

    def resolve_fee_payer(self, caller_secret: Optional[str] = None) -> Keypair:
        secret = caller_secret or settings.private_key
        if not secret:
            logger.error("[PROVISION] No fee payer available: PRIVATE_KEY missing and none supplied")
            raise missing_private_key_error()
        try:
            return self.ledger.load_signer(secret)
        except (ValueError, TypeError) as exc:
            logger.error("[PROVISION] Invalid fee payer key format: %s", type(exc).__name__)
            raise FormatError(
                "Invalid PRIVATE_KEY format",
                hint="Private key must be a valid base58 encoded Solana private key.",
            )

    async def ensure_fee_payer_balance(self, payer_address: str) -> None:
        """Top up the fee payer from the faucet on non-production networks only."""
        if not settings.allows_airdrop:
            return
        try:
            balance = await self.ledger.get_balance(payer_address)
            if balance >= settings.min_fee_lamports:
                return
            logger.info(
                "[PROVISION] Fee payer %s balance %d below %d, requesting airdrop of %d",
                payer_address,
                balance,
                settings.min_fee_lamports,
                settings.airdrop_lamports,
            )
            await self.ledger.request_airdrop(payer_address, settings.airdrop_lamports)
        except LedgerError as exc:
            logger.warning("[PROVISION] Fee payer top-up failed, continuing: %s", exc)

    async def submit(
        self,
        identity: WalletIdentity,
        normalized: NormalizedCredential,
        fee_payer_secret: Optional[str] = None,
    ) -> SubmissionResult:
        fee_payer = self.resolve_fee_payer(fee_payer_secret)
        payer_address = self.ledger.signer_address(fee_payer)

        await self.ensure_fee_payer_balance(payer_address)

        params = CreateWalletParams(
            payer=payer_address,
            passkey_public_key=normalized.public_key,
            credential_id=normalized.credential_id,
            wallet_id=identity.wallet_id,
            amount=settings.init_lamports,
        )
        logger.info(
            "[PROVISION] Creating smart wallet: payer=%s smartWalletId=%s amount=%d",
            payer_address,
            identity.wallet_id,
            params.amount,
        )

        try:
            transaction = await self.ledger.build_create_wallet_transaction(params)
            signature = await self.ledger.send_and_confirm(transaction, fee_payer)
        except LedgerTransactionError as exc:
            if exc.already_in_use:
                logger.warning(
                    "[PROVISION] Wallet creation for smartWalletId %s hit an existing account: %s",
                    identity.wallet_id,
                    exc.message,
                )
                return SubmissionResult(outcome=SubmissionOutcomeEnum.ALREADY_EXISTED)
            logger.error("[PROVISION] Wallet creation failed: %s", exc.message)
            raise SubmissionFailure(exc.message)
        except LedgerUnavailableError as exc:
            raise upstream_error(log_message=f"[PROVISION] Ledger unreachable during wallet creation: {exc}")
        except LedgerError as exc:
            logger.error("[PROVISION] Wallet creation failed: %s", exc)
            raise SubmissionFailure(str(exc))

        account = SmartWalletAccount(
            address=self.ledger.derive_wallet_address(identity.wallet_id),
            identity=identity,
            state=WalletStateEnum.JUST_CREATED,
            owner=self.ledger.program_id,
        )
        logger.info("[PROVISION] Created smart wallet %s (signature %s)", account.address, signature)
        return SubmissionResult(outcome=SubmissionOutcomeEnum.CREATED, account=account, signature=signature)
