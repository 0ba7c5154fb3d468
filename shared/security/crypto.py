"""Cryptographic utilities for identifiers, form decoding, and password hashing.

Provides secure random identifiers, strict base64 decoding, and the peppered
password digest that is fed into bcrypt.
"""

import binascii
import secrets
import string
from base64 import b64decode, b64encode
from typing import Union

from cryptography.hazmat.primitives import hashes

ALPHANUMERIC = string.ascii_letters + string.digits


def random_alphanumeric(length: int) -> str:
    """Generate a random string drawn from [A-Za-z0-9].

    Args:
        length: Number of characters

    Returns:
        Random alphanumeric string from a CSPRNG
    """
    if length < 0:
        raise ValueError(f"length must be non-negative, got: {length}")
    return "".join(secrets.choice(ALPHANUMERIC) for _ in range(length))


def decode_base64_text(value: Union[str, bytes]) -> str:
    """Decode standard, padded base64 into UTF-8 text.

    Args:
        value: Base64 encoded data

    Returns:
        Decoded text

    Raises:
        ValueError: If the data is not valid base64 or not valid UTF-8
    """
    if isinstance(value, str):
        value = value.encode("ascii", errors="replace")

    try:
        raw = b64decode(value, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64: {e}") from e

    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ValueError(f"Invalid UTF-8 in decoded value: {e}") from e


def peppered_digest(password: str, salt: str, pepper: str) -> str:
    """Pre-hash a password with its salt and the server-wide pepper.

    The digest is SHA-512/256 over password || salt || pepper, base64 encoded.
    Its 44 characters stay under bcrypt's 72 byte input limit regardless of
    the password length.

    Args:
        password: Plain text password
        salt: Per-user salt
        pepper: Server-wide secret

    Returns:
        Base64-encoded digest
    """
    digest = hashes.Hash(hashes.SHA512_256())
    digest.update(password.encode("utf-8"))
    digest.update(salt.encode("utf-8"))
    digest.update(pepper.encode("utf-8"))
    return b64encode(digest.finalize()).decode("ascii")

