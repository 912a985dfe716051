"""
Key and Byte Encoding Utilities

Decodes the byte-ish encodings browsers and mobile clients produce when they
serialize passkey material (base64/base64url strings, plain lists, typed arrays
serialized as numeric-keyed objects, Node Buffer JSON) and handles compressed
P-256 public keys.
"""

import base64
import binascii
import hashlib
import re
from typing import Any

from cryptography.hazmat.primitives.asymmetric import ec

COMPRESSED_KEY_SIZE = 33
UNCOMPRESSED_KEY_SIZE = 65
COORDINATE_SIZE = 32
COMPRESSED_PREFIXES = (0x02, 0x03)

NUMERIC_KEY_PATTERN = re.compile(r"^\d+$")
HEX_PATTERN = re.compile(r"^[0-9a-fA-F]+$")


def from_base64url(value: str) -> str:
    """Convert base64url (or unpadded base64) to padded standard base64."""
    s = value.strip().replace("-", "+").replace("_", "/")
    pad = len(s) % 4
    if pad:
        s += "=" * (4 - pad)
    return s


def decode_base64_flexible(value: str) -> bytes:
    """Decode standard or URL-safe base64, with or without padding."""
    try:
        return base64.b64decode(from_base64url(value), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"Invalid base64 string: {exc}") from exc


def is_array_like(value: Any) -> bool:
    """True for lists/tuples of ints and objects whose keys are all numeric (serialized typed arrays)."""
    if isinstance(value, (list, tuple)):
        return True
    if isinstance(value, dict):
        if value.get("type") == "Buffer" and isinstance(value.get("data"), list):
            return True
        return len(value) > 0 and all(NUMERIC_KEY_PATTERN.match(str(k)) for k in value)
    return False


def array_like_to_bytes(value: Any) -> bytes:
    """Convert an array-like value to bytes, ordering numeric keys by index."""
    if isinstance(value, dict):
        if value.get("type") == "Buffer" and isinstance(value.get("data"), list):
            items = value["data"]
        else:
            items = [value[k] for k in sorted(value, key=lambda k: int(k))]
    else:
        items = list(value)
    try:
        return bytes(int(b) for b in items)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Array-like value is not a byte sequence: {exc}") from exc


def coerce_bytes(value: Any) -> bytes:
    """Convert any supported byte-ish encoding to bytes."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return decode_base64_flexible(value)
    if is_array_like(value):
        return array_like_to_bytes(value)
    raise ValueError(f"Unsupported byte encoding: {type(value).__name__}")


def fit_coordinate(data: bytes, size: int = COORDINATE_SIZE) -> bytes:
    """Fit a big-endian coordinate to `size` bytes: left-pad short values, keep the low-order bytes of long ones."""
    if len(data) > size:
        return data[-size:]
    return data.rjust(size, b"\x00")


def compress_point(x: bytes, y: bytes) -> bytes:
    """Build a compressed P-256 point from its coordinates (prefix encodes the parity of y)."""
    x = fit_coordinate(x)
    y = fit_coordinate(y)
    prefix = 0x02 if y[-1] % 2 == 0 else 0x03
    return bytes([prefix]) + x


def compress_public_key(uncompressed_key: bytes) -> bytes:
    """Compress an uncompressed SEC1 P-256 public key."""
    if len(uncompressed_key) != UNCOMPRESSED_KEY_SIZE or uncompressed_key[0] != 0x04:
        raise ValueError("Invalid uncompressed public key format")
    return compress_point(uncompressed_key[1:33], uncompressed_key[33:65])


def is_on_curve(compressed_key: bytes) -> bool:
    """Check that a compressed key decodes to a point on P-256."""
    try:
        ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), compressed_key)
    except ValueError:
        return False
    return True


def sha256_bytes(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()
