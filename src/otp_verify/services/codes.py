"""Code generation and hashing helpers for one-time passcodes."""

from __future__ import annotations

import hashlib
import hmac
import secrets

OTP_LENGTH = 6

_UNKNOWN_IP = "unknown-ip"
_UNKNOWN_AGENT = "unknown-agent"


def generate_code(length: int = OTP_LENGTH) -> str:
    """Return a zero-padded numeric code drawn uniformly from ``[0, 10**length)``."""
    return f"{secrets.randbelow(10**length):0{length}d}"


def hash_code(code: str) -> str:
    """SHA-256 digest of *code* as uppercase hex.  This is what gets persisted."""
    return hashlib.sha256(code.encode("utf-8")).hexdigest().upper()


def codes_match(stored_hash: str, candidate_hash: str) -> bool:
    """Compare two hex digests in constant time.

    Malformed hex on either side never matches.
    """
    try:
        stored = bytes.fromhex(stored_hash)
        candidate = bytes.fromhex(candidate_hash)
    except ValueError:
        return False
    return hmac.compare_digest(stored, candidate)


def device_signature(ip_address: str | None, user_agent: str | None) -> str | None:
    """Fingerprint a client for quota bucketing.

    Returns ``None`` when neither value is present.  A missing half is
    replaced by a fixed placeholder, so raw values never become cache keys.
    """
    ip = (ip_address or "").strip()
    agent = (user_agent or "").strip()
    if not ip and not agent:
        return None

    canonical = f"{ip or _UNKNOWN_IP}|{agent or _UNKNOWN_AGENT}"
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest().upper()
