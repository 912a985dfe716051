import base64
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
import base58
import httpx
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from ...core.config import Settings
from ...services.ledger_client import (
    CreateWalletParams,
    LedgerTransactionError,
    LedgerUnavailableError,
)
from ...services.solana_rpc_client import (
    CREATE_SMART_WALLET_DISCRIMINATOR,
    DEVICE_ACCOUNT_SIZE,
    DEVICE_CREDENTIAL_OFFSET,
    LedgerRpcError,
    SolanaRpcLedgerClient,
    create_ledger_client,
    is_account_in_use,
)

PROGRAM_ID = str(Keypair().pubkey())


def create_mock_response(status_code, json_data):
    """Helper function to create a mock HTTP response"""
    mock_response = MagicMock()
    mock_response.status_code = status_code
    mock_response.json.return_value = json_data
    return mock_response


def rpc_result(result):
    return create_mock_response(200, {"jsonrpc": "2.0", "id": 1, "result": result})


def setup_mock_http_client(*responses):
    """Helper function to set up mock HTTP client"""
    mock_client = AsyncMock()
    mock_client.post = AsyncMock(side_effect=list(responses))
    return mock_client


@pytest.fixture
def client():
    return SolanaRpcLedgerClient("https://api.devnet.solana.com", PROGRAM_ID, confirm_timeout_s=0, poll_interval_s=0)


class TestDeriveWalletAddress:
    """Tests for the deterministic wallet address"""

    def test_matches_program_address(self, client):
        expected, _ = Pubkey.find_program_address(
            [b"smart_wallet", (1234).to_bytes(8, "little")], Pubkey.from_string(PROGRAM_ID)
        )
        assert client.derive_wallet_address(1234) == str(expected)

    def test_deterministic_and_distinct(self, client):
        assert client.derive_wallet_address(1) == client.derive_wallet_address(1)
        assert client.derive_wallet_address(1) != client.derive_wallet_address(2)


class TestRpcTransport:
    """Tests for JSON-RPC request handling"""

    @pytest.mark.asyncio
    async def test_get_account_found(self, client):
        data = b"\x01\x02\x03"
        response = rpc_result({"value": {
            "owner": PROGRAM_ID, "lamports": 5_000_000, "data": [base64.b64encode(data).decode(), "base64"],
        }})

        with patch('httpx.AsyncClient') as mock_client_class:
            mock_client = setup_mock_http_client(response)
            mock_client_class.return_value.__aenter__.return_value = mock_client

            info = await client.get_account("SomeAddress")

            payload = mock_client.post.call_args.kwargs["json"]
            assert payload["method"] == "getAccountInfo"
            assert payload["params"][0] == "SomeAddress"

        assert info.owner == PROGRAM_ID
        assert info.lamports == 5_000_000
        assert info.data == data

    @pytest.mark.asyncio
    async def test_get_account_missing(self, client):
        with patch('httpx.AsyncClient') as mock_client_class:
            mock_client_class.return_value.__aenter__.return_value = setup_mock_http_client(rpc_result({"value": None}))

            assert await client.get_account("SomeAddress") is None

    @pytest.mark.asyncio
    async def test_retries_once_on_network_error(self, client):
        with patch('httpx.AsyncClient') as mock_client_class:
            mock_client = setup_mock_http_client(httpx.ConnectError("refused"), rpc_result({"value": 42}))
            mock_client_class.return_value.__aenter__.return_value = mock_client

            assert await client.get_balance("SomeAddress") == 42
            assert mock_client.post.call_count == 2

    @pytest.mark.asyncio
    async def test_unreachable_after_retry(self, client):
        with patch('httpx.AsyncClient') as mock_client_class:
            mock_client_class.return_value.__aenter__.return_value = setup_mock_http_client(
                httpx.ConnectError("refused"), httpx.ConnectError("refused")
            )

            with pytest.raises(LedgerUnavailableError):
                await client.get_balance("SomeAddress")

    @pytest.mark.asyncio
    async def test_http_error_status(self, client):
        with patch('httpx.AsyncClient') as mock_client_class:
            mock_client_class.return_value.__aenter__.return_value = setup_mock_http_client(
                create_mock_response(503, {})
            )

            with pytest.raises(LedgerUnavailableError) as exc_info:
                await client.get_balance("SomeAddress")
            assert "503" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_invalid_json(self, client):
        response = create_mock_response(200, None)
        response.json.side_effect = ValueError("not json")
        response.text = "<html>"

        with patch('httpx.AsyncClient') as mock_client_class:
            mock_client_class.return_value.__aenter__.return_value = setup_mock_http_client(response)

            with pytest.raises(LedgerUnavailableError):
                await client.get_balance("SomeAddress")

    @pytest.mark.asyncio
    async def test_rpc_error_object(self, client):
        response = create_mock_response(200, {"jsonrpc": "2.0", "id": 1, "error": {
            "code": -32602, "message": "Invalid param: WrongSize",
        }})

        with patch('httpx.AsyncClient') as mock_client_class:
            mock_client_class.return_value.__aenter__.return_value = setup_mock_http_client(response)

            with pytest.raises(LedgerRpcError) as exc_info:
                await client.get_balance("SomeAddress")

        assert exc_info.value.code == -32602
        assert exc_info.value.message == "Invalid param: WrongSize"


class TestWalletIndex:
    """Tests for wallet lookups through device accounts"""

    @pytest.mark.asyncio
    async def test_find_wallets_by_credential(self, client):
        credential_id = bytes(range(32))
        wallet = Keypair().pubkey()
        data = (
            b"\x00" * 8
            + b"\x02" + bytes(32)
            + credential_id
            + bytes(wallet)
            + (987654321).to_bytes(8, "little")
        )
        assert len(data) == DEVICE_ACCOUNT_SIZE
        response = rpc_result([
            {"pubkey": "Device111", "account": {"data": [base64.b64encode(data).decode(), "base64"]}},
            {"pubkey": "Short111", "account": {"data": [base64.b64encode(b"\x00" * 10).decode(), "base64"]}},
        ])

        with patch('httpx.AsyncClient') as mock_client_class:
            mock_client = setup_mock_http_client(response)
            mock_client_class.return_value.__aenter__.return_value = mock_client

            candidates = await client.find_wallets_by_credential(credential_id)

            payload = mock_client.post.call_args.kwargs["json"]
            filters = payload["params"][1]["filters"]
            assert payload["method"] == "getProgramAccounts"
            assert {"dataSize": DEVICE_ACCOUNT_SIZE} in filters
            assert {"memcmp": {"offset": DEVICE_CREDENTIAL_OFFSET,
                               "bytes": base58.b58encode(credential_id).decode()}} in filters

        assert len(candidates) == 1
        assert candidates[0].address == str(wallet)
        assert candidates[0].wallet_id == 987654321


class TestAccountInUse:
    """Tests for is_account_in_use"""

    def test_structured_custom_zero(self):
        assert is_account_in_use({"InstructionError": [0, {"Custom": 0}]})

    def test_custom_zero_on_other_instruction(self):
        assert not is_account_in_use({"InstructionError": [1, {"Custom": 0}]})

    def test_other_custom_code(self):
        assert not is_account_in_use({"InstructionError": [0, {"Custom": 6001}]})

    def test_message_fallback(self):
        assert is_account_in_use(None, "Allocate: account Address { .. } already in use")

    def test_logs_fallback(self):
        assert is_account_in_use("AccountInUse", "", ["Program log: Allocate: account already in use"])

    def test_unrelated_failure(self):
        assert not is_account_in_use({"InstructionError": [0, "InvalidArgument"]}, "failed", ["log"])


class TestSubmission:
    """Tests for transaction build, send and confirm"""

    @pytest.fixture
    def payer(self):
        return Keypair()

    @pytest.fixture
    def params(self, payer):
        return CreateWalletParams(
            payer=str(payer.pubkey()),
            passkey_public_key=b"\x02" + bytes(32),
            credential_id=bytes(32),
            wallet_id=77,
            amount=5_000_000,
        )

    @pytest.mark.asyncio
    async def test_build_create_wallet_transaction(self, client, params, payer):
        client._rpc = AsyncMock(return_value={"value": {"blockhash": str(Hash.default())}})

        message = await client.build_create_wallet_transaction(params)

        assert isinstance(message, Message)
        assert message.account_keys[0] == payer.pubkey()
        assert Pubkey.from_string(client.derive_wallet_address(77)) in message.account_keys
        data = bytes(message.instructions[0].data)
        assert data.startswith(CREATE_SMART_WALLET_DISCRIMINATOR)
        assert data[-16:-8] == (77).to_bytes(8, "little")
        assert data[-8:] == (5_000_000).to_bytes(8, "little")

    @pytest.mark.asyncio
    async def test_send_and_confirm(self, client, params, payer):
        client._rpc = AsyncMock(return_value={"value": {"blockhash": str(Hash.default())}})
        message = await client.build_create_wallet_transaction(params)
        client._rpc = AsyncMock(side_effect=[
            "5ignature",
            {"value": [{"confirmationStatus": "confirmed", "err": None}]},
        ])

        signature = await client.send_and_confirm(message, payer)

        assert signature == "5ignature"
        send_call = client._rpc.call_args_list[0]
        assert send_call.args[0] == "sendTransaction"

    @pytest.mark.asyncio
    async def test_send_account_in_use(self, client, params, payer):
        client._rpc = AsyncMock(return_value={"value": {"blockhash": str(Hash.default())}})
        message = await client.build_create_wallet_transaction(params)
        client._rpc = AsyncMock(side_effect=LedgerRpcError(
            "Transaction simulation failed: Error processing Instruction 0: custom program error: 0x0",
            code=-32002,
            data={"err": {"InstructionError": [0, {"Custom": 0}]}, "logs": ["Program log: Allocate"]},
        ))

        with pytest.raises(LedgerTransactionError) as exc_info:
            await client.send_and_confirm(message, payer)

        assert exc_info.value.already_in_use is True
        assert exc_info.value.logs == ["Program log: Allocate"]

    @pytest.mark.asyncio
    async def test_send_other_failure(self, client, params, payer):
        client._rpc = AsyncMock(return_value={"value": {"blockhash": str(Hash.default())}})
        message = await client.build_create_wallet_transaction(params)
        client._rpc = AsyncMock(side_effect=LedgerRpcError(
            "Transaction simulation failed: custom program error: 0x1771",
            data={"err": {"InstructionError": [0, {"Custom": 6001}]}},
        ))

        with pytest.raises(LedgerTransactionError) as exc_info:
            await client.send_and_confirm(message, payer)

        assert exc_info.value.already_in_use is False

    @pytest.mark.asyncio
    async def test_confirmation_error(self, client):
        client._rpc = AsyncMock(return_value={"value": [{"err": {"InstructionError": [0, {"Custom": 0}]}}]})

        with pytest.raises(LedgerTransactionError) as exc_info:
            await client._confirm("sig")

        assert exc_info.value.already_in_use is True

    @pytest.mark.asyncio
    async def test_confirmation_timeout(self, client):
        client._rpc = AsyncMock(return_value={"value": [None]})

        with pytest.raises(LedgerTransactionError) as exc_info:
            await client._confirm("sig")

        assert "not confirmed" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_airdrop_waits_for_confirmation(self, client):
        client._rpc = AsyncMock(side_effect=[
            "airdropSig",
            {"value": [{"confirmationStatus": "finalized", "err": None}]},
        ])

        assert await client.request_airdrop("SomeAddress", 1_000) == "airdropSig"
        assert client._rpc.call_args_list[1].args[0] == "getSignatureStatuses"


class TestCreateLedgerClient:
    """Tests for create_ledger_client"""

    def test_missing_program_id(self):
        assert create_ledger_client(Settings(smart_wallet_program_id=None)) is None

    def test_invalid_program_id(self):
        assert create_ledger_client(Settings(smart_wallet_program_id="not-a-pubkey")) is None

    def test_builds_client(self):
        config = Settings(smart_wallet_program_id=PROGRAM_ID, rpc_url="http://localhost:8899", commitment="finalized")

        ledger = create_ledger_client(config)

        assert isinstance(ledger, SolanaRpcLedgerClient)
        assert ledger.program_id == PROGRAM_ID
        assert ledger.rpc_url == "http://localhost:8899"
        assert ledger.commitment == "finalized"
