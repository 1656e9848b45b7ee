"""
JWT Token Service

HS256 bearer tokens signed with PyJWT. The subject is the user id and the
role travels as a private claim.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from tableside.models import UserRole
from tableside.services.identity.base import BaseTokenService, IdentityClaim

logger = logging.getLogger(__name__)


class JWTTokenService(BaseTokenService):
    """
    Attributes:
        secret: HMAC signing key
        algorithm: JWT algorithm (default HS256)
        expires_in: Token lifetime
    """

    def __init__(self, secret: str, algorithm: str = "HS256", expires_in: timedelta = timedelta(days=7)):
        if not secret:
            raise ValueError("JWT secret is required")
        self.secret = secret
        self.algorithm = algorithm
        self.expires_in = expires_in

    @property
    def provider_name(self) -> str:
        return "jwt"

    def issue(self, claim: IdentityClaim) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(claim.user_id),
            "role": claim.role.value,
            "iat": now,
            "exp": now + self.expires_in,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Optional[IdentityClaim]:
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            logger.debug("Rejected expired token")
            return None
        except jwt.InvalidTokenError as e:
            logger.debug(f"Rejected invalid token: {e}")
            return None

        try:
            return IdentityClaim(
                user_id=int(payload["sub"]),
                role=UserRole(payload.get("role", UserRole.CUSTOMER.value)),
            )
        except (TypeError, ValueError):
            logger.debug("Rejected token with malformed claims")
            return None
