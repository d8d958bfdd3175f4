"""Text encodings for account addresses (bech32) and identifiers (cb58)."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable

HRP = "token"
PUBLIC_KEY_LEN = 32
ID_LEN = 32


class AddressError(ValueError):
    """Raised when an address cannot be encoded or parsed."""


class IDError(ValueError):
    """Raised when an identifier string cannot be parsed."""


_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_CHARSET_REV = {char: value for value, char in enumerate(_CHARSET)}
_GENERATOR = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)
_BECH32_MAX_LEN = 90
_CHECKSUM_LEN = 6

_B58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_B58_INDEX = {char: value for value, char in enumerate(_B58_ALPHABET)}
_CB58_CHECKSUM_LEN = 4


def _polymod(values: Iterable[int]) -> int:
    chk = 1
    for value in values:
        top = chk >> 25
        chk = ((chk & 0x1FFFFFF) << 5) ^ value
        for bit, gen in enumerate(_GENERATOR):
            if (top >> bit) & 1:
                chk ^= gen
    return chk


def _hrp_expand(hrp: str) -> list[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _create_checksum(hrp: str, data: list[int]) -> list[int]:
    pm = _polymod(_hrp_expand(hrp) + data + [0] * _CHECKSUM_LEN) ^ 1
    return [(pm >> (5 * (5 - shift))) & 31 for shift in range(_CHECKSUM_LEN)]


def _convert_bits(data: Iterable[int], from_bits: int, to_bits: int, pad: bool) -> list[int]:
    acc = 0
    bits = 0
    out: list[int] = []
    maxv = (1 << to_bits) - 1
    for value in data:
        if value < 0 or value >> from_bits:
            raise AddressError("invalid data range")
        acc = (acc << from_bits) | value
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            out.append((acc >> bits) & maxv)
    if pad:
        if bits:
            out.append((acc << (to_bits - bits)) & maxv)
    elif bits >= from_bits or (acc << (to_bits - bits)) & maxv:
        raise AddressError("invalid padding")
    return out


def _bech32_encode(hrp: str, payload: bytes) -> str:
    hrp = hrp.lower()
    if not hrp:
        raise AddressError("empty hrp")
    data = _convert_bits(payload, 8, 5, pad=True)
    combined = data + _create_checksum(hrp, data)
    return hrp + "1" + "".join(_CHARSET[d] for d in combined)


def _bech32_decode(text: str) -> tuple[str, bytes]:
    if len(text) > _BECH32_MAX_LEN:
        raise AddressError("address too long")
    if any(ord(c) < 33 or ord(c) > 126 for c in text):
        raise AddressError("invalid character in address")
    if text.lower() != text and text.upper() != text:
        raise AddressError("mixed case address")
    text = text.lower()
    pos = text.rfind("1")
    if pos < 1 or pos + _CHECKSUM_LEN + 1 > len(text):
        raise AddressError("invalid separator position")
    hrp = text[:pos]
    try:
        data = [_CHARSET_REV[c] for c in text[pos + 1:]]
    except KeyError as exc:
        raise AddressError(f"invalid character {exc.args[0]!r}") from None
    if _polymod(_hrp_expand(hrp) + data) != 1:
        raise AddressError("invalid checksum")
    return hrp, bytes(_convert_bits(data[:-_CHECKSUM_LEN], 5, 8, pad=False))


def address(public_key: bytes, hrp: str = HRP) -> str:
    """Encode a 32-byte public key as a bech32 address."""
    key = bytes(public_key)
    if len(key) != PUBLIC_KEY_LEN:
        raise AddressError("invalid public key")
    return _bech32_encode(hrp, key)


def parse_address(text: str, hrp: str = HRP) -> bytes:
    """Decode a bech32 address into its 32-byte public key."""
    found_hrp, payload = _bech32_decode(text)
    if found_hrp != hrp.lower():
        raise AddressError("incorrect hrp")
    if len(payload) != PUBLIC_KEY_LEN:
        raise AddressError("invalid public key")
    return payload


def _b58_encode(raw: bytes) -> str:
    number = int.from_bytes(raw, "big")
    digits = []
    while number:
        number, rem = divmod(number, 58)
        digits.append(_B58_ALPHABET[rem])
    zeros = len(raw) - len(raw.lstrip(b"\x00"))
    return "1" * zeros + "".join(reversed(digits))


def _b58_decode(text: str) -> bytes:
    number = 0
    for char in text:
        try:
            number = number * 58 + _B58_INDEX[char]
        except KeyError:
            raise IDError(f"invalid base58 character {char!r}") from None
    zeros = len(text) - len(text.lstrip("1"))
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    return b"\x00" * zeros + body


def _checksum(raw: bytes) -> bytes:
    return hashlib.sha256(raw).digest()[-_CB58_CHECKSUM_LEN:]


def id_to_string(value: bytes) -> str:
    """Render a 32-byte identifier in cb58 form."""
    raw = bytes(value)
    if len(raw) != ID_LEN:
        raise IDError("identifier must be 32 bytes")
    return _b58_encode(raw + _checksum(raw))


def id_from_string(text: str) -> bytes:
    """Parse a cb58 identifier string into 32 bytes."""
    decoded = _b58_decode(text)
    if len(decoded) < _CB58_CHECKSUM_LEN:
        raise IDError("input string is smaller than the checksum size")
    raw, check = decoded[:-_CB58_CHECKSUM_LEN], decoded[-_CB58_CHECKSUM_LEN:]
    if _checksum(raw) != check:
        raise IDError("invalid input checksum")
    if len(raw) != ID_LEN:
        raise IDError("identifier must be 32 bytes")
    return raw