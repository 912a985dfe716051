from .log_sanitizer import sanitize_for_log, preview_bytes, describe_shape
from .key_encoding import coerce_bytes, compress_point, decode_base64_flexible

__all__ = ["sanitize_for_log", "preview_bytes", "describe_shape", "coerce_bytes", "compress_point", "decode_base64_flexible"]
