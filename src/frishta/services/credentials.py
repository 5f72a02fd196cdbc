"""Password credential hashing and verification (PBKDF2-HMAC-SHA512)."""

import hashlib
import hmac
import secrets
from dataclasses import dataclass

PBKDF2_ALGORITHM = "sha512"
PBKDF2_ITERATIONS = 120_000
KEY_LENGTH = 64  # bytes, 512 bits
SALT_BYTES = 16


@dataclass(frozen=True)
class Credential:
    """Derived password credential; both fields are hex encoded."""

    salt: str
    hash: str


class CredentialHasher:
    """Derives and verifies salted, iterated password hashes.

    Both operations are CPU bound; callers on the event loop should run them
    in a thread pool.
    """

    def __init__(self, iterations: int = PBKDF2_ITERATIONS) -> None:
        self.iterations = iterations

    def _digest(self, password: str, salt: str) -> str:
        return hashlib.pbkdf2_hmac(
            PBKDF2_ALGORITHM,
            password.encode("utf-8"),
            salt.encode("utf-8"),
            self.iterations,
            dklen=KEY_LENGTH,
        ).hex()

    def derive(self, password: str) -> Credential:
        """Hash a password with a fresh random salt."""
        salt = secrets.token_hex(SALT_BYTES)
        return Credential(salt=salt, hash=self._digest(password, salt))

    def verify(self, password: str, salt: str, expected_hash: str) -> bool:
        """Check a password against a stored salt and hash in constant time."""
        computed = self._digest(password, salt)
        return hmac.compare_digest(computed.encode("utf-8"), expected_hash.encode("utf-8"))
