"""Password hashing with bcrypt."""
import logging
from typing import Optional

import bcrypt

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 12
BCRYPT_MAX_BYTES = 72  # bcrypt ignores anything past this


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Hash password using bcrypt"""
    password_bytes = password.encode('utf-8')[:BCRYPT_MAX_BYTES]
    return bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=rounds)).decode('utf-8')


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """Verify password against hash. A missing or malformed hash never verifies."""
    if not password_hash:
        return False

    password_bytes = password.encode('utf-8')[:BCRYPT_MAX_BYTES]
    try:
        return bcrypt.checkpw(password_bytes, password_hash.encode('utf-8'))
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False
