"""bcrypt password hashing."""

import bcrypt

BCRYPT_ROUNDS = 12
# bcrypt only looks at the first 72 bytes and newer releases refuse longer input
BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Return a salted bcrypt hash for ``password``."""
    hashed = bcrypt.hashpw(_encode(password), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check ``password`` against a stored hash in constant time."""
    try:
        return bcrypt.checkpw(_encode(password), password_hash.encode("utf-8"))
    except ValueError:
        # not a bcrypt hash
        return False
