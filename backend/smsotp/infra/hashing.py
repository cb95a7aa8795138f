"""Centralized hashing configuration for one-time codes.

Every module that stores a secret at rest MUST import the hasher from here so
that the Argon2id parameters stay consistent across the service.
"""

from argon2 import PasswordHasher
from argon2 import exceptions as argon_exc

# Argon2id parameters
# - Memory: 64 MB (65536 KB)
# - Iterations (time_cost): 3
# - Parallelism: 4
CODE_HASHER = PasswordHasher(
    time_cost=3,           # Number of iterations
    memory_cost=65536,     # 64 MB in KB
    parallelism=4,         # Parallel threads
    hash_len=32,           # Output hash length in bytes
    salt_len=16,           # Salt length in bytes
)


def hash_secret(secret: str) -> str:
    """Salt and hash a secret using Argon2id."""
    return CODE_HASHER.hash(secret)


def verify_secret(hash: str, secret: str) -> bool:
    """Verify a secret against its hash.

    Returns True if valid, False on mismatch or an unreadable hash.
    """
    try:
        return CODE_HASHER.verify(hash, secret)
    except (argon_exc.VerificationError, argon_exc.InvalidHashError):
        return False
