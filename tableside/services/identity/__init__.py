"""
Identity Service Factory

Usage:
    from tableside.services.identity import get_token_service, get_password_hasher

    token = get_token_service().issue(IdentityClaim(user_id=1, role=UserRole.ADMIN))
    claim = get_token_service().verify(token)

Both instances are cached; call ``reset_identity_services()`` after
changing settings (tests do this).
"""

import logging
from datetime import timedelta
from functools import lru_cache

from tableside.core.config import get_settings
from tableside.services.identity.base import (
    BasePasswordHasher,
    BaseTokenService,
    IdentityClaim,
)
from tableside.services.identity.tokens import JWTTokenService
from tableside.services.identity.passwords import BcryptPasswordHasher

logger = logging.getLogger(__name__)


@lru_cache()
def get_token_service() -> BaseTokenService:
    settings = get_settings()
    logger.info(
        f"Identity: Using JWTTokenService ({settings.jwt_algorithm}, "
        f"expires in {settings.jwt_expires_minutes} min)"
    )
    return JWTTokenService(
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        expires_in=timedelta(minutes=settings.jwt_expires_minutes),
    )


@lru_cache()
def get_password_hasher() -> BasePasswordHasher:
    return BcryptPasswordHasher(rounds=get_settings().bcrypt_rounds)


def reset_identity_services() -> None:
    """Clear the cached token service and password hasher."""
    get_token_service.cache_clear()
    get_password_hasher.cache_clear()
    logger.debug("Identity service cache cleared")


__all__ = [
    "get_token_service",
    "get_password_hasher",
    "reset_identity_services",
    "BaseTokenService",
    "BasePasswordHasher",
    "IdentityClaim",
    "JWTTokenService",
    "BcryptPasswordHasher",
]
