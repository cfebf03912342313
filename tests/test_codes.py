"""Tests for code generation, hashing and device fingerprints."""

import re

from otp_verify.services.codes import codes_match, device_signature, generate_code, hash_code


def test_generate_code_is_six_zero_padded_digits():
    codes = {generate_code() for _ in range(200)}
    assert all(re.fullmatch(r"\d{6}", code) for code in codes)
    # 200 draws from a million values are practically never all equal
    assert len(codes) > 1


def test_generate_code_respects_length():
    assert re.fullmatch(r"\d{8}", generate_code(8))


def test_hash_is_deterministic_sha256_hex():
    assert hash_code("123456") == hash_code("123456")
    assert re.fullmatch(r"[0-9A-F]{64}", hash_code("123456"))
    assert hash_code("123456") != hash_code("123457")


def test_codes_match():
    stored = hash_code("042042")
    assert codes_match(stored, hash_code("042042"))
    assert codes_match(stored, hash_code("042042").lower())
    assert not codes_match(stored, hash_code("042043"))


def test_codes_match_rejects_malformed_digests():
    assert not codes_match(hash_code("000000"), "not-hex")
    assert not codes_match("zz", hash_code("000000"))


def test_device_signature_absent_without_origin_or_agent():
    assert device_signature(None, None) is None
    assert device_signature("  ", "") is None


def test_device_signature_hides_raw_values():
    signature = device_signature("10.0.0.1", "Mozilla/5.0")
    assert signature is not None
    assert "10.0.0.1" not in signature
    assert signature == device_signature(" 10.0.0.1 ", "Mozilla/5.0 ")
    assert signature != device_signature("10.0.0.2", "Mozilla/5.0")


def test_device_signature_placeholders_for_missing_half():
    assert device_signature("10.0.0.1", None) == device_signature("10.0.0.1", "unknown-agent")
    assert device_signature(None, "curl") == device_signature("unknown-ip", "curl")
