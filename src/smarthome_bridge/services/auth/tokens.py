"""Opaque token and authorization-code generation.

Identifiers are drawn from :mod:`secrets` and rendered in the base58 alphabet
(no ``0``, ``O``, ``I`` or ``l``), so they are printable, URL safe and easy to
copy by hand.  The default 256 bits yield about 44 characters.
"""
from __future__ import annotations

import secrets

__all__ = ["B58_ALPHABET", "TokenGenerator", "b58encode"]

B58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_MIN_BITS = 128


def b58encode(data: bytes) -> str:
    value = int.from_bytes(data, "big")
    chars: list[str] = []
    while value:
        value, idx = divmod(value, 58)
        chars.append(B58_ALPHABET[idx])
    # leading zero bytes map to the zero digit
    pad = len(data) - len(data.lstrip(b"\x00"))
    return B58_ALPHABET[0] * pad + "".join(reversed(chars))


class TokenGenerator:
    def __init__(self, bits: int = 256) -> None:
        if bits % 8 or bits < _MIN_BITS:
            raise ValueError(f"bits must be a multiple of 8 and at least {_MIN_BITS}")
        self._nbytes = bits // 8

    @property
    def bits(self) -> int:
        return self._nbytes * 8

    def generate(self) -> str:
        return b58encode(secrets.token_bytes(self._nbytes))
