"""Security module for identifiers, form decoding, and password digests."""

from .crypto import decode_base64_text, peppered_digest, random_alphanumeric

__all__ = [
    "decode_base64_text",
    "peppered_digest",
    "random_alphanumeric",
]
