import hashlib
import logging
import re
import secrets
from dataclasses import dataclass
from typing import Any, Optional

from ..utils.enums import IdentitySourceEnum
from ..utils.errors import FormatError
from ..utils.key_encoding import HEX_PATTERN, array_like_to_bytes, is_array_like
from ..utils.log_sanitizer import sanitize_for_log
from .credential_normalizer import NormalizedCredential

logger = logging.getLogger(__name__)

WALLET_ID_SIZE = 8
WALLET_ID_MASK = (1 << (WALLET_ID_SIZE * 8)) - 1

DECIMAL_PATTERN = re.compile(r"^\d+$")


@dataclass(frozen=True)
class WalletIdentity:
    wallet_id: int
    seed: Optional[bytes]
    source: IdentitySourceEnum

    def to_bytes(self) -> bytes:
        return self.wallet_id.to_bytes(WALLET_ID_SIZE, "big")

    def __str__(self) -> str:
        return str(self.wallet_id)


def wallet_id_from_seed(seed: bytes) -> int:
    """First 8 bytes of SHA-256(seed), big-endian."""
    return int.from_bytes(hashlib.sha256(seed).digest()[:WALLET_ID_SIZE], "big")


def parse_wallet_id_hint(hint: Any) -> int:
    """
    Decode a previously issued wallet id.

    Integers are used as is. Strings prefixed with 0x are hex, all-digit strings
    are decimal (the form this service issues), other hex-digit strings are hex.
    Byte-ish values are read big-endian.
    """
    if isinstance(hint, bool):
        raise FormatError("Invalid smartWalletId: expected an integer, string or byte array")
    if isinstance(hint, int):
        value = hint
    elif isinstance(hint, str):
        text = hint.strip()
        if text.lower().startswith("0x") and HEX_PATTERN.match(text[2:]):
            value = int(text[2:], 16)
        elif DECIMAL_PATTERN.match(text):
            value = int(text, 10)
        elif HEX_PATTERN.match(text):
            value = int(text, 16)
        else:
            raise FormatError(f"Invalid smartWalletId: {sanitize_for_log(hint, max_length=40)}")
    elif isinstance(hint, (bytes, bytearray)) or is_array_like(hint):
        try:
            data = bytes(hint) if isinstance(hint, (bytes, bytearray)) else array_like_to_bytes(hint)
        except ValueError as exc:
            raise FormatError(f"Invalid smartWalletId byte array: {exc}")
        value = int.from_bytes(data, "big")
    else:
        raise FormatError("Invalid smartWalletId: expected an integer, string or byte array")

    if value < 0:
        raise FormatError("Invalid smartWalletId: must not be negative")
    if value > WALLET_ID_MASK:
        byte_length = (value.bit_length() + 7) // 8
        logger.warning(
            "[PROVISION] smartWalletId is %d bytes, truncating to the low-order %d bytes",
            byte_length,
            WALLET_ID_SIZE,
        )
        value &= WALLET_ID_MASK
    return value


def derive_identity(
    normalized: Optional[NormalizedCredential],
    existing_identity_hint: Any = None,
) -> WalletIdentity:
    if existing_identity_hint not in (None, ""):
        wallet_id = parse_wallet_id_hint(existing_identity_hint)
        logger.info("[PROVISION] Reusing smartWalletId from passkeyData: %s", wallet_id)
        return WalletIdentity(wallet_id=wallet_id, seed=None, source=IdentitySourceEnum.HINT)

    if normalized is not None and normalized.credential_id:
        seed, source = normalized.credential_id, IdentitySourceEnum.CREDENTIAL_ID
    elif normalized is not None and normalized.public_key:
        seed, source = normalized.public_key, IdentitySourceEnum.PUBLIC_KEY
    else:
        # No seed material: the id cannot be reproduced on a later call
        wallet_id = secrets.randbits(WALLET_ID_SIZE * 8)
        logger.warning("[PROVISION] No seed material for wallet id, generated random id %s", wallet_id)
        return WalletIdentity(wallet_id=wallet_id, seed=None, source=IdentitySourceEnum.RANDOM)

    wallet_id = wallet_id_from_seed(seed)
    logger.info("[PROVISION] Derived deterministic smartWalletId %s from %s", wallet_id, source.value)
    return WalletIdentity(wallet_id=wallet_id, seed=seed, source=source)
