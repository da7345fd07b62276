"""
Password Hashing - Argon2 one-way hashing and verification.
"""

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError


class PasswordService:
    """Thin wrapper so callers never see the digest format."""

    def __init__(self, hasher: PasswordHasher | None = None) -> None:
        self.hasher = hasher or PasswordHasher()

    def hash(self, plaintext: str) -> str:
        return self.hasher.hash(plaintext)

    def verify(self, plaintext: str, digest: str | None) -> bool:
        if not digest:
            return False
        try:
            return self.hasher.verify(digest, plaintext)
        except (VerificationError, InvalidHashError):
            return False


password_service = PasswordService()
