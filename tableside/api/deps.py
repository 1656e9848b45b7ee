"""
Shared FastAPI dependencies: database session, authentication and the
service constructors that inject settings-driven policy.
"""

import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.core.config import get_settings
from tableside.database import get_db
from tableside.exceptions import AuthenticationError, PermissionDeniedError
from tableside.models import OrderStatus, User, UserRole
from tableside.services.identity import IdentityClaim, get_token_service
from tableside.services.storage import get_blob_store
from tableside.services.catalog import ProductService
from tableside.services.tables import TableAvailabilityChecker

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


async def get_claim(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> IdentityClaim:
    """Verify the bearer token. Missing or invalid tokens are 401."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Authentication required")

    claim = get_token_service().verify(credentials.credentials)
    if claim is None:
        raise AuthenticationError("Invalid or expired token")
    return claim


async def get_current_user(
    claim: IdentityClaim = Depends(get_claim),
    db: AsyncSession = Depends(get_db),
) -> User:
    user = await db.get(User, claim.user_id)
    if user is None:
        # Token outlived its account
        raise AuthenticationError("User no longer exists")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """The role is read from the database, not the token, so demotions apply at once."""
    if user.role != UserRole.ADMIN:
        logger.info(f"User #{user.id} denied admin access")
        raise PermissionDeniedError("Admin access required")
    return user


def get_availability_checker(db: AsyncSession = Depends(get_db)) -> TableAvailabilityChecker:
    settings = get_settings()
    return TableAvailabilityChecker(
        db,
        window=settings.reservation_window,
        blocking_statuses=[OrderStatus(s) for s in settings.reservation_blocking_status_list],
    )


def get_product_service(db: AsyncSession = Depends(get_db)) -> ProductService:
    return ProductService(db, blob_store=get_blob_store())
