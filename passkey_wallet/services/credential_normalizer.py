"""
Credential normalization for passkey payloads.

Clients serialize the same passkey in several shapes depending on platform and
SDK version. The public-key shape is classified once, at the boundary, into one
of four variants; each variant has a single normalization function. The output
is always a 32-byte credential id and a 33-byte compressed P-256 key.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from ..core.config import settings
from ..utils.errors import FormatError, MissingField
from ..utils.key_encoding import (
    COMPRESSED_KEY_SIZE,
    COMPRESSED_PREFIXES,
    UNCOMPRESSED_KEY_SIZE,
    array_like_to_bytes,
    coerce_bytes,
    compress_point,
    compress_public_key,
    decode_base64_flexible,
    is_array_like,
    is_on_curve,
    sha256_bytes,
)
from ..utils.log_sanitizer import describe_shape, preview_bytes

logger = logging.getLogger(__name__)

CREDENTIAL_ID_SIZE = 32

CREDENTIAL_ID_FIELDS = ("credentialId", "credentialID")
ENCODED_PUBLIC_KEY_FIELDS = ("passkeyPublicKey", "publicKeyBase64")
WALLET_ID_HINT_FIELDS = ("smartWalletId", "walletId", "smartWalletID")


@dataclass(frozen=True)
class EncodedString:
    """Explicit pre-encoded key field (passkeyPublicKey / publicKeyBase64)."""
    value: str


@dataclass(frozen=True)
class ArrayLike:
    """List, numeric-keyed object or Buffer JSON holding the key bytes."""
    value: Any


@dataclass(frozen=True)
class Coordinates:
    x: Any
    y: Any


@dataclass(frozen=True)
class RawString:
    """`publicKey` sent directly as a base64 string."""
    value: str


PublicKeyShape = Union[EncodedString, ArrayLike, Coordinates, RawString]


@dataclass(frozen=True)
class NormalizedCredential:
    credential_id: bytes
    public_key: bytes

    def __post_init__(self):
        if len(self.credential_id) != CREDENTIAL_ID_SIZE:
            raise ValueError("credential_id must be 32 bytes")
        if len(self.public_key) != COMPRESSED_KEY_SIZE or self.public_key[0] not in COMPRESSED_PREFIXES:
            raise ValueError("public_key must be a 33-byte compressed point")


def _first_present(raw: Dict[str, Any], fields) -> Any:
    for field in fields:
        value = raw.get(field)
        if value not in (None, "", [], {}):
            return value
    return None


def classify_public_key(raw: Dict[str, Any]) -> Optional[PublicKeyShape]:
    """Pick the public-key shape. The first matching shape wins."""
    for field in ENCODED_PUBLIC_KEY_FIELDS:
        encoded = raw.get(field)
        if isinstance(encoded, str) and encoded:
            return EncodedString(encoded)

    public_key = _first_present(raw, ("publicKey",))
    if public_key is None:
        return None
    if is_array_like(public_key):
        return ArrayLike(public_key)
    if isinstance(public_key, dict):
        if public_key.get("x") is not None and public_key.get("y") is not None:
            return Coordinates(public_key["x"], public_key["y"])
        logger.warning(
            "[PROVISION] publicKey is an object but neither array-like nor x/y coordinates: %s",
            describe_shape(public_key),
        )
        return None
    if isinstance(public_key, str) and public_key:
        return RawString(public_key)
    return None


def _fit_compressed_key(data: bytes, source: str) -> bytes:
    if len(data) == UNCOMPRESSED_KEY_SIZE and data[0] == 0x04:
        logger.warning("[PROVISION] %s is an uncompressed point, compressing it", source)
        return compress_public_key(data)
    if len(data) < COMPRESSED_KEY_SIZE:
        raise FormatError(
            f"Invalid passkeyPublicKey length: {len(data)} bytes, expected {COMPRESSED_KEY_SIZE} bytes"
        )
    if len(data) > COMPRESSED_KEY_SIZE:
        logger.warning(
            "[PROVISION] Truncating %s from %d to %d bytes", source, len(data), COMPRESSED_KEY_SIZE
        )
        return data[:COMPRESSED_KEY_SIZE]
    return data


def _decode_key_string(value: str, source: str) -> bytes:
    try:
        data = decode_base64_flexible(value)
    except ValueError:
        raise FormatError(f"Invalid {source} format. Must be a valid base64 string.")
    return _fit_compressed_key(data, source)


def _normalize_encoded_string(shape: EncodedString) -> bytes:
    return _decode_key_string(shape.value, "passkeyPublicKey")


def _normalize_raw_string(shape: RawString) -> bytes:
    return _decode_key_string(shape.value, "publicKey")


def _normalize_array_like(shape: ArrayLike) -> bytes:
    try:
        data = array_like_to_bytes(shape.value)
    except ValueError as exc:
        raise FormatError(f"Invalid publicKey byte array: {exc}")
    return _fit_compressed_key(data, "publicKey")


def _normalize_coordinates(shape: Coordinates) -> bytes:
    try:
        x = coerce_bytes(shape.x)
        y = coerce_bytes(shape.y)
    except ValueError as exc:
        raise FormatError(f"Invalid publicKey coordinates: {exc}")
    if not x or not y:
        raise FormatError("Invalid publicKey coordinates: x and y must not be empty")
    return compress_point(x, y)


_NORMALIZERS = {
    EncodedString: _normalize_encoded_string,
    ArrayLike: _normalize_array_like,
    Coordinates: _normalize_coordinates,
    RawString: _normalize_raw_string,
}


def normalize_public_key(shape: PublicKeyShape) -> bytes:
    key = _NORMALIZERS[type(shape)](shape)
    if key[0] not in COMPRESSED_PREFIXES:
        raise FormatError(
            f"Invalid passkeyPublicKey prefix: {hex(key[0])}, expected 0x02 or 0x03 (compressed point)"
        )
    if settings.strict_public_key_validation and not is_on_curve(key):
        raise FormatError("passkeyPublicKey is not a valid P-256 point")
    return key


def normalize_credential_id(value: Any) -> bytes:
    """Decode a credential id and fit it to 32 bytes (hashing any other length)."""
    try:
        decoded = coerce_bytes(value)
    except ValueError:
        raise FormatError("Invalid credentialId format. Must be base64, base64url or a byte array.")
    if not decoded:
        raise MissingField("credentialId", "Missing credentialId. Passkey data must include credentialId.")

    if len(decoded) != CREDENTIAL_ID_SIZE:
        logger.warning(
            "[PROVISION] credentialId is %d bytes, hashing to %d bytes", len(decoded), CREDENTIAL_ID_SIZE
        )
        return sha256_bytes(decoded)
    return decoded


def extract_wallet_id_hint(raw: Dict[str, Any]) -> Any:
    return _first_present(raw, WALLET_ID_HINT_FIELDS)


def normalize(raw: Any) -> NormalizedCredential:
    if not isinstance(raw, dict) or not raw:
        raise MissingField("passkeyData")

    logger.info("[PROVISION] Normalizing passkeyData with shape %s", describe_shape(raw))

    raw_credential_id = _first_present(raw, CREDENTIAL_ID_FIELDS)
    if raw_credential_id is None:
        raise MissingField("credentialId", "Missing credentialId. Passkey data must include credentialId.")
    credential_id = normalize_credential_id(raw_credential_id)

    shape = classify_public_key(raw)
    if shape is None:
        raise MissingField(
            "passkeyPublicKey",
            "Missing passkeyPublicKey. Passkey data must include passkeyPublicKey, "
            "publicKeyBase64, or publicKey (array-like or x/y coordinates).",
        )
    public_key = normalize_public_key(shape)

    logger.info(
        "[PROVISION] Normalized credential: shape=%s credentialId=%s publicKey=%s",
        type(shape).__name__,
        preview_bytes(credential_id),
        preview_bytes(public_key),
    )
    return NormalizedCredential(credential_id=credential_id, public_key=public_key)
