"""
Identity Service Abstract Base Classes

Two small contracts the API layer depends on:

    - BaseTokenService: issue and verify bearer tokens carrying an
      IdentityClaim (who is calling, and with which role)
    - BasePasswordHasher: one-way password hashing

Routers never import a concrete implementation; they go through the
factories in ``tableside.services.identity``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from tableside.models import UserRole


@dataclass(frozen=True)
class IdentityClaim:
    """
    The verified identity behind a request.

    Attributes:
        user_id: ID of the authenticated user
        role: Role the user held when the token was issued
    """
    user_id: int
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class BaseTokenService(ABC):
    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    def issue(self, claim: IdentityClaim) -> str:
        """Return a signed token for ``claim``."""
        pass

    @abstractmethod
    def verify(self, token: str) -> Optional[IdentityClaim]:
        """
        Decode a token.

        Returns:
            IdentityClaim if the token is valid and unexpired, None otherwise
        """
        pass


class BasePasswordHasher(ABC):
    @abstractmethod
    def hash(self, password: str) -> str:
        pass

    @abstractmethod
    def verify(self, password: str, password_hash: Optional[str]) -> bool:
        """False for a wrong password or a missing/malformed hash."""
        pass
