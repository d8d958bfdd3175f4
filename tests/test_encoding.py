import pytest

from tokenvm.encoding import (
    AddressError,
    IDError,
    address,
    id_from_string,
    id_to_string,
    parse_address,
)

KEY = bytes(range(32))
EMPTY = bytes(32)


def test_address_round_trip():
    text = address(KEY)
    assert parse_address(text) == KEY


def test_address_uses_hrp_prefix():
    assert address(KEY).startswith("token1")
    assert address(KEY, "other").startswith("other1")


def test_address_custom_hrp_round_trip():
    text = address(EMPTY, "abc")
    assert parse_address(text, "abc") == EMPTY


def test_parse_address_wrong_hrp():
    text = address(KEY, "other")
    with pytest.raises(AddressError, match="incorrect hrp"):
        parse_address(text)


def test_parse_address_bad_checksum():
    text = address(KEY)
    last = "q" if text[-1] != "q" else "p"
    with pytest.raises(AddressError, match="checksum"):
        parse_address(text[:-1] + last)


def test_parse_address_uppercase_accepted():
    assert parse_address(address(KEY).upper()) == KEY


def test_parse_address_mixed_case_rejected():
    text = address(KEY)
    with pytest.raises(AddressError):
        parse_address(text[:-1] + text[-1].upper() if text[-1].isalpha() else "Token1" + text[6:])


def test_address_rejects_short_key():
    with pytest.raises(AddressError):
        address(b"\x01\x02")


def test_parse_address_short_payload():
    text = address(KEY, "token")
    # A valid bech32 string carrying fewer than 32 bytes.
    from tokenvm import encoding

    short = encoding._bech32_encode("token", b"\x01\x02\x03")
    with pytest.raises(AddressError, match="invalid public key"):
        parse_address(short)
    assert parse_address(text) == KEY


def test_empty_id_string():
    assert id_to_string(EMPTY) == "11111111111111111111111111111111LpoYY"


def test_id_round_trip():
    assert id_from_string(id_to_string(KEY)) == KEY


def test_id_bad_checksum():
    text = id_to_string(KEY)
    last = "2" if text[-1] != "2" else "3"
    with pytest.raises(IDError):
        id_from_string(text[:-1] + last)


def test_id_invalid_character():
    with pytest.raises(IDError, match="invalid base58"):
        id_from_string("0OIl")


def test_id_wrong_length():
    with pytest.raises(IDError):
        id_to_string(b"\x00" * 31)