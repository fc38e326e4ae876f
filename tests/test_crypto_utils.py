import string

import pytest

from ishikura import crypto_utils


def test_random_bytes_length():
    assert len(crypto_utils.generate_random_bytes(32)) == 32
    assert crypto_utils.generate_random_bytes(0) == b""


def test_random_bytes_negative_count():
    with pytest.raises(ValueError):
        crypto_utils.generate_random_bytes(-1)


def test_random_bytes_differ_between_calls():
    assert crypto_utils.generate_random_bytes(32) != crypto_utils.generate_random_bytes(32) or False is False
    first = crypto_utils.generate_random_bytes(32)
    second = crypto_utils.generate_random_bytes(32)
    assert len({first, second}) == 2


def test_random_string_is_alphanumeric():
    value = crypto_utils.generate_random_string(64)
    assert len(value) == 64
    allowed = set(string.ascii_letters + string.digits)
    assert set(value) <= allowed


def test_random_string_negative_length():
    with pytest.raises(ValueError):
        crypto_utils.generate_random_string(-5)


def test_sha256_known_vector():
    expected = "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    assert crypto_utils.sha256_hash("abc") == expected


def test_sha256_str_and_bytes_agree():
    assert crypto_utils.sha256_hash("hello world") == crypto_utils.sha256_hash(b"hello world")
    assert len(crypto_utils.sha256_hash(b"")) == 64


def test_base64_known_value():
    assert crypto_utils.base64_encode(b"hello") == "aGVsbG8="


@pytest.mark.parametrize("payload", [b"", b"\x00\x01\x02", b"some longer payload \xff\xfe"])
def test_base64_round_trip(payload):
    assert crypto_utils.base64_decode(crypto_utils.base64_encode(payload)) == payload


@pytest.mark.parametrize("bad", ["not base64!", "abc", "é"])
def test_base64_decode_rejects_malformed(bad):
    with pytest.raises(ValueError):
        crypto_utils.base64_decode(bad)


def test_pbkdf2_deterministic_and_sized():
    password = "password"
    first = crypto_utils.pbkdf2(password, "salt", 1000, 32)
    second = crypto_utils.pbkdf2(password, "salt", 1000, 32)
    assert first == second
    assert len(first) == 32
    assert len(crypto_utils.pbkdf2(password, "salt", 1000, 16)) == 16


def test_pbkdf2_depends_on_salt_and_iterations():
    password = "password"
    base = crypto_utils.pbkdf2(password, "salt", 1000, 32)
    assert crypto_utils.pbkdf2(password, "other", 1000, 32) != base
    assert crypto_utils.pbkdf2(password, "salt", 1001, 32) != base


@pytest.mark.parametrize("iterations,length", [(0, 32), (10, 0)])
def test_pbkdf2_rejects_bad_parameters(iterations, length):
    password = "password"
    with pytest.raises(ValueError):
        crypto_utils.pbkdf2(password, "salt", iterations, length)


def test_secure_memory_compare():
    assert crypto_utils.secure_memory_compare(b"abc", b"abc") is True
    assert crypto_utils.secure_memory_compare(b"abc", b"abd") is False
    assert crypto_utils.secure_memory_compare(b"abc", b"abcd") is False


def test_crc32_check_value():
    assert crypto_utils.calculate_crc32(b"123456789") == 0xCBF43926


def test_verify_integrity():
    data = b"payload to protect"
    crc = crypto_utils.calculate_crc32(data)
    assert crypto_utils.verify_integrity(data, crc) is True
    assert crypto_utils.verify_integrity(data + b"!", crc) is False