"""
Log Sanitization Utility

Passkey payloads arrive from untrusted clients and are logged while the
normalizer works out which shape they use. These helpers keep that logging
safe: CR/LF and other unsafe characters never reach the log stream, long
values are truncated, and key material is only ever shown as a short preview.

Usage:
    from passkey_wallet.utils.log_sanitizer import sanitize_for_log, describe_shape

    logger.info("[PROVISION] credentialId=%s", sanitize_for_log(raw_id, max_length=16))
    logger.info("[PROVISION] passkeyData shape: %s", describe_shape(passkey_data))
"""

import base64
import re
from typing import Any, Optional

# Base64/base64url alphabets, base58, decimal and hex ids all fit in this set
SAFE_CHAR_PATTERN = re.compile(r'^[a-zA-Z0-9.\-_+/=:@\s]+$')

CRLF_PATTERN = re.compile(r'[\r\n]')

DEFAULT_SENSITIVE_KEYS = {'privatekey', 'userprivatekey', 'secret', 'private_key', 'authorization'}


def sanitize_for_log(value: Any, max_length: int = 200) -> str:
    """
    Sanitize user-controlled data for safe logging.

    Safe values are returned truncated to `max_length`; anything containing
    CR/LF or characters outside the allowlist is base64-encoded and marked.

    Examples:
        >>> sanitize_for_log("q83vEjRWeJA")
        'q83vEjRWeJA'

        >>> sanitize_for_log("abc\\nFORGED")
        '[BASE64]YWJjCkZPUkdFRA=='
    """
    if value is None:
        return "[NULL]"

    str_value = str(value)
    if len(str_value) > max_length * 2:
        str_value = str_value[:max_length * 2]

    is_safe = bool(SAFE_CHAR_PATTERN.match(str_value)) and not CRLF_PATTERN.search(str_value)
    if is_safe:
        return str_value[:max_length]

    encoded = base64.b64encode(str_value.encode('utf-8', errors='replace')).decode('ascii')
    return f"[BASE64]{encoded}"[:max_length]


def preview_bytes(data: Optional[bytes], show: int = 4) -> str:
    """Short hex preview of key material: length plus the first `show` bytes."""
    if data is None:
        return "[NULL]"
    return f"{len(data)}B:{data[:show].hex()}..."


def describe_shape(value: Any, depth: int = 0) -> Any:
    """
    Describe the structure of an untrusted payload without its contents.

    Dicts keep their keys (sanitized), everything else is reduced to its type
    name and length. Numeric-keyed objects are summarized rather than listed.

    Examples:
        >>> describe_shape({"credentialId": "abc", "publicKey": {"x": [1, 2], "y": [3, 4]}})
        {'credentialId': 'str[3]', 'publicKey': {'x': 'list[2]', 'y': 'list[2]'}}
    """
    if isinstance(value, dict):
        if value and all(str(k).isdigit() for k in value):
            return f"array-like[{len(value)}]"
        if depth >= 2:
            return f"dict[{len(value)}]"
        return {
            sanitize_for_log(k, max_length=40): (
                "[REDACTED]" if str(k).lower() in DEFAULT_SENSITIVE_KEYS else describe_shape(v, depth + 1)
            )
            for k, v in value.items()
        }
    if isinstance(value, (str, bytes, bytearray, list, tuple)):
        return f"{type(value).__name__}[{len(value)}]"
    return type(value).__name__
