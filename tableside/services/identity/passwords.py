"""
Password hashing with bcrypt.

bcrypt only looks at the first 72 bytes of a password; longer inputs are
truncated explicitly so hashing and verification always agree.
"""

from typing import Optional

import bcrypt

from tableside.services.identity.base import BasePasswordHasher

BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


class BcryptPasswordHasher(BasePasswordHasher):
    def __init__(self, rounds: int = 12):
        self.rounds = rounds

    def hash(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(_encode(password), salt).decode("ascii")

    def verify(self, password: str, password_hash: Optional[str]) -> bool:
        if not password or not password_hash:
            return False
        try:
            return bcrypt.checkpw(_encode(password), password_hash.encode("ascii"))
        except ValueError:
            # Not a bcrypt hash
            return False
