import base64
import hashlib
import os

# Disable slowapi before the router module builds its limiter
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest

from .fake_ledger import FakeLedgerClient, new_secret

ZERO_CREDENTIAL_ID = bytes(32)
ZERO_CREDENTIAL_ID_B64 = base64.b64encode(ZERO_CREDENTIAL_ID).decode("ascii")
EVEN_Y = bytes(31) + b"\x02"
ODD_Y = bytes(31) + b"\x03"

# Wallet id for the all-zero credential: first 8 bytes of SHA-256, big-endian
ZERO_CREDENTIAL_WALLET_ID = int.from_bytes(hashlib.sha256(ZERO_CREDENTIAL_ID).digest()[:8], "big")


@pytest.fixture
def fake_ledger():
    return FakeLedgerClient()


@pytest.fixture
def indexed_ledger():
    return FakeLedgerClient(supports_wallet_index=True)


@pytest.fixture
def fee_payer_secret():
    return new_secret()


@pytest.fixture
def coordinate_passkey():
    """All-zero credential with an x/y public key whose y is even."""
    return {
        "credentialId": ZERO_CREDENTIAL_ID_B64,
        "publicKey": {"x": list(bytes(32)), "y": list(EVEN_Y)},
    }
