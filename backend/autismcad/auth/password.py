"""
AutismCad Backend — Password Hashing
=====================================

New hashes are bcrypt with `settings.bcrypt_cost` rounds. Accounts imported
from the previous system still carry unsalted SHA-256 hex digests; those are
recognised by shape (64 hex chars) and compared in constant time.

bcrypt only looks at the first 72 bytes of a password; inputs are cut there
explicitly because recent bcrypt releases raise instead of truncating.
"""

import hashlib
import hmac
import logging
import re

import bcrypt

from autismcad.config import settings

logger = logging.getLogger(__name__)

_LEGACY_SHA256 = re.compile(r"^[a-f0-9]{64}$", re.IGNORECASE)
BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_cost)
    return bcrypt.hashpw(_password_bytes(password), salt).decode("ascii")


def is_legacy_hash(stored_hash: str) -> bool:
    return bool(_LEGACY_SHA256.match(stored_hash or ""))


def verify_password(password: str, stored_hash: str) -> bool:
    if not stored_hash:
        return False

    if is_legacy_hash(stored_hash):
        digest = hashlib.sha256(password.encode("utf-8")).hexdigest()
        return hmac.compare_digest(digest, stored_hash.lower())

    try:
        return bcrypt.checkpw(_password_bytes(password), stored_hash.encode("ascii"))
    except ValueError:
        # Malformed hash in the database: treat as a failed login, but leave a trace
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False
