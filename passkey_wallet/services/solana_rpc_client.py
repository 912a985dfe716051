import asyncio
import base64
import hashlib
import logging
from typing import Any, Dict, List, Optional

import base58
import httpx
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.transaction import Transaction

from ..core.config import Settings
from .ledger_client import (
    AccountInfo,
    CreateWalletParams,
    LedgerClient,
    LedgerError,
    LedgerTransactionError,
    LedgerUnavailableError,
    WalletCandidate,
)

logger = logging.getLogger(__name__)

# Constants
CONTENT_TYPE_JSON = "application/json"

SMART_WALLET_SEED = b"smart_wallet"
WALLET_DEVICE_SEED = b"wallet_device"
CREATE_SMART_WALLET_DISCRIMINATOR = hashlib.sha256(b"global:create_smart_wallet").digest()[:8]

# Wallet device account layout: discriminator | passkey (33) | credential hash (32) | smart wallet (32) | wallet id (u64 LE)
DEVICE_PASSKEY_OFFSET = 8
DEVICE_CREDENTIAL_OFFSET = DEVICE_PASSKEY_OFFSET + 33
DEVICE_WALLET_OFFSET = DEVICE_CREDENTIAL_OFFSET + 32
DEVICE_WALLET_ID_OFFSET = DEVICE_WALLET_OFFSET + 32
DEVICE_ACCOUNT_SIZE = DEVICE_WALLET_ID_OFFSET + 8

# SystemError::AccountAlreadyInUse surfaces as Custom(0) through the program's CPI.
# The create instruction is the only instruction in the transaction and only CPIs
# into the System program, so Custom(0) on instruction 0 cannot come from another program.
CREATE_INSTRUCTION_INDEX = 0
ACCOUNT_IN_USE_CUSTOM_CODE = 0
ACCOUNT_IN_USE_TEXT = "already in use"

CONFIRMED_STATUSES = ("confirmed", "finalized")


class LedgerRpcError(LedgerError):
    """JSON-RPC error object returned by the node."""

    def __init__(self, message: str, code: Optional[int] = None, data: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data or {}


def is_account_in_use(err: Any, message: str = "", logs: Optional[List[str]] = None) -> bool:
    """
    Classify a failed transaction as "account already in use".

    The structured InstructionError code is checked first. Matching the text of
    the error message or program logs is a fallback for nodes that only report
    the failure in prose.
    """
    if isinstance(err, dict):
        instruction_error = err.get("InstructionError")
        if isinstance(instruction_error, list) and len(instruction_error) == 2:
            index, detail = instruction_error
            if (
                index == CREATE_INSTRUCTION_INDEX
                and isinstance(detail, dict)
                and detail.get("Custom") == ACCOUNT_IN_USE_CUSTOM_CODE
            ):
                return True
    if ACCOUNT_IN_USE_TEXT in (message or ""):
        return True
    return any(ACCOUNT_IN_USE_TEXT in log for log in (logs or []))


class SolanaRpcLedgerClient(LedgerClient):
    """LedgerClient over the Solana JSON-RPC API."""

    supports_wallet_index = True

    def __init__(
        self,
        rpc_url: str,
        program_id: str,
        *,
        commitment: str = "confirmed",
        timeout_s: float = 30,
        confirm_timeout_s: float = 60,
        poll_interval_s: float = 1.0,
    ):
        self.rpc_url = rpc_url
        self.program_id = program_id
        self._program = Pubkey.from_string(program_id)
        self.commitment = commitment
        self.timeout_s = timeout_s
        self.confirm_timeout_s = confirm_timeout_s
        self.poll_interval_s = poll_interval_s

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        headers = {"Content-Type": CONTENT_TYPE_JSON, "Accept": CONTENT_TYPE_JSON}

        # Simple retry for transient network errors
        for attempt in range(2):
            try:
                async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                    response = await client.post(self.rpc_url, json=payload, headers=headers)
            except httpx.RequestError as exc:
                if attempt == 0:
                    continue
                logger.error("[LEDGER] Unable to reach RPC node for %s: %s", method, exc)
                raise LedgerUnavailableError(f"Unable to reach ledger RPC for {method}: {exc}") from exc

            if not (200 <= response.status_code < 300):
                logger.error("[LEDGER] HTTP %s from RPC node for %s", response.status_code, method)
                raise LedgerUnavailableError(f"Ledger RPC returned HTTP {response.status_code} for {method}")

            try:
                body = response.json()
            except ValueError:
                logger.error("[LEDGER] Invalid JSON from RPC node for %s. Preview: %s", method, response.text[:200])
                raise LedgerUnavailableError(f"Ledger RPC returned invalid JSON for {method}")

            error = body.get("error")
            if error:
                raise LedgerRpcError(
                    error.get("message", "Unknown RPC error"),
                    code=error.get("code"),
                    data=error.get("data") if isinstance(error.get("data"), dict) else None,
                )
            return body.get("result")

        raise LedgerUnavailableError(f"Ledger RPC unavailable for {method}")

    def _wallet_pubkey(self, wallet_id: int) -> Pubkey:
        pda, _bump = Pubkey.find_program_address(
            [SMART_WALLET_SEED, wallet_id.to_bytes(8, "little")], self._program
        )
        return pda

    def derive_wallet_address(self, wallet_id: int) -> str:
        return str(self._wallet_pubkey(wallet_id))

    async def get_account(self, address: str) -> Optional[AccountInfo]:
        result = await self._rpc(
            "getAccountInfo", [address, {"encoding": "base64", "commitment": self.commitment}]
        )
        value = (result or {}).get("value")
        if not value:
            return None
        data_field = value.get("data") or []
        data = base64.b64decode(data_field[0]) if data_field else b""
        return AccountInfo(
            address=address,
            owner=value.get("owner", ""),
            lamports=int(value.get("lamports", 0)),
            data=data,
        )

    async def _find_devices(self, offset: int, needle: bytes) -> List[WalletCandidate]:
        result = await self._rpc(
            "getProgramAccounts",
            [
                self.program_id,
                {
                    "encoding": "base64",
                    "commitment": self.commitment,
                    "filters": [
                        {"dataSize": DEVICE_ACCOUNT_SIZE},
                        {"memcmp": {"offset": offset, "bytes": base58.b58encode(needle).decode("ascii")}},
                    ],
                },
            ],
        )
        candidates = []
        for entry in result or []:
            data_field = (entry.get("account") or {}).get("data") or []
            data = base64.b64decode(data_field[0]) if data_field else b""
            if len(data) < DEVICE_ACCOUNT_SIZE:
                continue
            wallet = Pubkey.from_bytes(data[DEVICE_WALLET_OFFSET:DEVICE_WALLET_ID_OFFSET])
            wallet_id = int.from_bytes(data[DEVICE_WALLET_ID_OFFSET:DEVICE_ACCOUNT_SIZE], "little")
            candidates.append(WalletCandidate(address=str(wallet), wallet_id=wallet_id))
        return candidates

    async def find_wallets_by_credential(self, credential_id: bytes) -> List[WalletCandidate]:
        return await self._find_devices(DEVICE_CREDENTIAL_OFFSET, credential_id)

    async def find_wallets_by_passkey(self, public_key: bytes) -> List[WalletCandidate]:
        return await self._find_devices(DEVICE_PASSKEY_OFFSET, public_key)

    async def get_balance(self, address: str) -> int:
        result = await self._rpc("getBalance", [address, {"commitment": self.commitment}])
        return int((result or {}).get("value", 0))

    async def request_airdrop(self, address: str, lamports: int) -> str:
        signature = await self._rpc("requestAirdrop", [address, lamports, {"commitment": self.commitment}])
        await self._confirm(signature)
        return signature

    async def _latest_blockhash(self) -> Hash:
        result = await self._rpc("getLatestBlockhash", [{"commitment": self.commitment}])
        return Hash.from_string(result["value"]["blockhash"])

    async def build_create_wallet_transaction(self, params: CreateWalletParams) -> Message:
        payer = Pubkey.from_string(params.payer)
        smart_wallet = self._wallet_pubkey(params.wallet_id)
        device, _bump = Pubkey.find_program_address(
            [WALLET_DEVICE_SEED, bytes(smart_wallet), params.credential_id], self._program
        )
        data = (
            CREATE_SMART_WALLET_DISCRIMINATOR
            + params.passkey_public_key
            + params.credential_id
            + params.wallet_id.to_bytes(8, "little")
            + params.amount.to_bytes(8, "little")
        )
        instruction = Instruction(
            self._program,
            data,
            [
                AccountMeta(payer, True, True),
                AccountMeta(smart_wallet, False, True),
                AccountMeta(device, False, True),
                AccountMeta(SYSTEM_PROGRAM_ID, False, False),
            ],
        )
        blockhash = await self._latest_blockhash()
        return Message.new_with_blockhash([instruction], payer, blockhash)

    async def send_and_confirm(self, transaction: Message, signer: Keypair) -> str:
        signed = Transaction([signer], transaction, transaction.recent_blockhash)
        encoded = base64.b64encode(bytes(signed)).decode("ascii")
        try:
            signature = await self._rpc(
                "sendTransaction",
                [
                    encoded,
                    {"encoding": "base64", "skipPreflight": False, "preflightCommitment": self.commitment},
                ],
            )
        except LedgerRpcError as exc:
            logs = exc.data.get("logs") or []
            raise LedgerTransactionError(
                exc.message,
                logs=logs,
                already_in_use=is_account_in_use(exc.data.get("err"), exc.message, logs),
            ) from exc

        logger.info("[LEDGER] Transaction sent: %s", signature)
        await self._confirm(signature)
        return signature

    async def _confirm(self, signature: str) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.confirm_timeout_s
        while True:
            result = await self._rpc(
                "getSignatureStatuses", [[signature], {"searchTransactionHistory": True}]
            )
            statuses = (result or {}).get("value") or [None]
            status: Optional[Dict[str, Any]] = statuses[0]
            if status:
                err = status.get("err")
                if err:
                    raise LedgerTransactionError(
                        f"Transaction {signature} failed: {err}",
                        already_in_use=is_account_in_use(err),
                    )
                if status.get("confirmationStatus") in CONFIRMED_STATUSES:
                    return
            if loop.time() >= deadline:
                raise LedgerTransactionError(
                    f"Transaction {signature} was not confirmed within {self.confirm_timeout_s}s"
                )
            await asyncio.sleep(self.poll_interval_s)


def create_ledger_client(config: Settings) -> Optional[LedgerClient]:
    """Build the process-wide ledger client, or None when the program id is not configured."""
    if not config.smart_wallet_program_id:
        logger.error("[LEDGER] SMART_WALLET_PROGRAM_ID is not set; provisioning is disabled")
        return None
    if not config.looks_like_dev_rpc:
        logger.warning(
            "[LEDGER] RPC URL %s does not look like a development cluster; wallets will be created on it",
            config.rpc_url,
        )
    try:
        return SolanaRpcLedgerClient(
            config.rpc_url,
            config.smart_wallet_program_id,
            commitment=config.commitment,
            timeout_s=config.ledger_timeout_s,
            confirm_timeout_s=config.confirm_timeout_s,
            poll_interval_s=config.confirm_poll_interval_s,
        )
    except ValueError as exc:
        logger.error("[LEDGER] Invalid SMART_WALLET_PROGRAM_ID %s: %s", config.smart_wallet_program_id, exc)
        return None
