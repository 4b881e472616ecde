from __future__ import annotations

from hashlib import sha256

BASE62_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"


def sha256_digest(text: str) -> bytes:
    return sha256(text.encode("utf-8")).digest()


def base62(data: bytes, length: int) -> str:
    """
    Encode the leading entropy of `data` as `length` base62 characters.
    """
    number = int.from_bytes(data, "big")
    chars: list[str] = []
    while len(chars) < length:
        number, rem = divmod(number, 62)
        chars.append(BASE62_ALPHABET[rem])
    return "".join(chars)
