"""Password hashing for calculator user accounts.

Hashes are salted PBKDF2-SHA256 stored as
``pbkdf2_sha256$<iterations>$<salt hex>$<hash hex>``. Verification uses
constant-time comparison.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

import structlog

logger = structlog.get_logger(__name__)

ALGORITHM = "pbkdf2_sha256"
ITERATIONS = 260_000


def _derive(password: str, salt: bytes, iterations: int) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode(), salt, iterations)


def hash_password(password: str, iterations: int = ITERATIONS) -> str:
    """Hash a password with a fresh random salt."""
    salt = secrets.token_bytes(16)
    digest = _derive(password, salt, iterations)
    return f"{ALGORITHM}${iterations}${salt.hex()}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    """Check ``password`` against a stored hash. Malformed hashes never match."""
    try:
        algorithm, iterations, salt_hex, digest_hex = stored.split("$")
        salt = bytes.fromhex(salt_hex)
        rounds = int(iterations)
    except ValueError:
        logger.warning("password_hash_malformed")
        return False
    if algorithm != ALGORITHM:
        return False
    candidate = _derive(password, salt, rounds)
    return hmac.compare_digest(candidate.hex(), digest_hex)
