"""
Users & Authentication

- AuthService: sign-up and sign-in, issuing bearer tokens
- UserService: the signed-in user's own profile, password and history,
  plus the admin-only user management operations

Emails are stored lower-cased; lookups compare lower-cased values.
Password hashing runs in a worker thread since bcrypt is CPU-bound.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.core.config import Settings, get_settings
from tableside.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from tableside.models import (
    CartItem,
    CartItemCustomization,
    Order,
    User,
    UserRole,
)
from tableside.services.common import UNSET, clean_text, commit
from tableside.services.identity import (
    BasePasswordHasher,
    BaseTokenService,
    IdentityClaim,
    get_password_hasher,
    get_token_service,
)
from tableside.services.orders import OPEN_ORDER_STATUSES, OrderFilter, OrderService

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DUPLICATE_EMAIL = "Email already exists"


def normalize_email(email: Optional[str]) -> str:
    email = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email format")
    return email


def parse_role(value: Union[UserRole, str, None]) -> UserRole:
    if isinstance(value, UserRole):
        return value
    try:
        return UserRole(str(value).upper())
    except ValueError:
        raise ValidationError("Invalid role. Must be CUSTOMER or ADMIN")


@dataclass(frozen=True)
class AuthResult:
    user: User
    token: str


@dataclass
class UserFilter:
    """
    Filter for the admin user listing.

    Attributes:
        role: only users with this role
        search: case-insensitive substring of name or email
        limit: page size
        offset: rows to skip
    """
    role: Optional[UserRole] = None
    search: Optional[str] = None
    limit: int = 50
    offset: int = 0


@dataclass(frozen=True)
class UserStats:
    total_users: int
    today_users: int
    admin_count: int
    customer_count: int


class AuthService:
    def __init__(
        self,
        db: AsyncSession,
        hasher: Optional[BasePasswordHasher] = None,
        tokens: Optional[BaseTokenService] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.hasher = hasher or get_password_hasher()
        self.tokens = tokens or get_token_service()
        self.settings = settings or get_settings()

    def _issue(self, user: User) -> AuthResult:
        return AuthResult(user=user, token=self.tokens.issue(IdentityClaim(user.id, user.role)))

    async def sign_up(self, name: Optional[str], email: Optional[str], password: Optional[str]) -> AuthResult:
        """
        Register a customer account and sign it in.

        Raises:
            ValidationError: missing field, bad email, short password
            ConflictError: email already registered
        """
        name = clean_text(name)
        if not name or not email or not password:
            raise ValidationError("Name, email, and password are required")
        email = normalize_email(email)
        min_length = self.settings.min_password_length
        if len(password) < min_length:
            raise ValidationError(f"Password must be at least {min_length} characters long")

        existing = await self.db.execute(select(User.id).where(func.lower(User.email) == email))
        if existing.first() is not None:
            raise ConflictError(DUPLICATE_EMAIL)

        password_hash = await asyncio.to_thread(self.hasher.hash, password)
        user = User(
            name=name,
            email=email,
            password_hash=password_hash,
            role=UserRole(self.settings.default_user_role),
        )
        self.db.add(user)
        await commit(self.db, "create user", conflict_message=DUPLICATE_EMAIL)

        logger.info(f"User #{user.id} signed up ({email})")
        return self._issue(user)

    async def sign_in(self, email: Optional[str], password: Optional[str]) -> AuthResult:
        """
        Raises:
            ValidationError: missing email or password
            AuthenticationError: unknown email or wrong password
        """
        if not email or not password:
            raise ValidationError("Email and password are required")

        result = await self.db.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )
        user = result.scalar_one_or_none()
        if user is None or not await asyncio.to_thread(self.hasher.verify, password, user.password_hash):
            logger.info(f"Failed sign-in for {email!r}")
            raise AuthenticationError("Invalid email or password")

        return self._issue(user)


class UserService:
    def __init__(
        self,
        db: AsyncSession,
        hasher: Optional[BasePasswordHasher] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.hasher = hasher or get_password_hasher()
        self.settings = settings or get_settings()

    # =========================================================================
    # SELF-SERVICE
    # =========================================================================

    async def get_user(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def update_profile(self, user_id: int, name=UNSET, email=UNSET) -> User:
        user = await self.get_user(user_id)

        if name is not UNSET:
            name = clean_text(name)
            if not name:
                raise ValidationError("Name cannot be empty")
            user.name = name

        if email is not UNSET:
            email = normalize_email(email)
            taken = await self.db.execute(
                select(User.id).where(func.lower(User.email) == email, User.id != user_id)
            )
            if taken.first() is not None:
                raise ConflictError("Email is already in use")
            user.email = email

        await commit(self.db, "update profile", conflict_message="Email is already in use")
        return user

    async def change_password(self, user_id: int, current_password: Optional[str], new_password: Optional[str]) -> None:
        """
        Raises:
            ValidationError: missing or too-short password
            AuthenticationError: current password does not match
        """
        if not current_password or not new_password:
            raise ValidationError("Current password and new password are required")
        min_length = self.settings.min_password_length
        if len(new_password) < min_length:
            raise ValidationError(f"New password must be at least {min_length} characters long")

        user = await self.get_user(user_id)
        if not await asyncio.to_thread(self.hasher.verify, current_password, user.password_hash):
            raise AuthenticationError("Current password is incorrect")

        user.password_hash = await asyncio.to_thread(self.hasher.hash, new_password)
        await commit(self.db, "change password")
        logger.info(f"User #{user_id} changed password")

    async def order_history(self, user_id: int, limit: int = 20, offset: int = 0) -> list[Order]:
        return await OrderService(self.db).list_user_orders(
            user_id, OrderFilter(limit=limit, offset=offset)
        )

    # =========================================================================
    # ADMIN
    # =========================================================================

    async def list_users(self, filters: Optional[UserFilter] = None) -> list[tuple[User, int]]:
        """Users with their order counts, newest first."""
        filters = filters or UserFilter()
        query = (
            select(User, func.count(Order.id))
            .outerjoin(Order, Order.user_id == User.id)
            .group_by(User.id)
        )
        if filters.role is not None:
            query = query.where(User.role == filters.role)
        if filters.search:
            pattern = f"%{filters.search.strip().lower()}%"
            query = query.where(
                or_(func.lower(User.name).like(pattern), func.lower(User.email).like(pattern))
            )
        query = query.order_by(User.created_at.desc(), User.id.desc()).offset(filters.offset).limit(filters.limit)

        result = await self.db.execute(query)
        return [(user, count) for user, count in result.all()]

    async def recent_orders(self, user_id: int, limit: int = 10) -> list[Order]:
        return await OrderService(self.db).list_user_orders(user_id, OrderFilter(limit=limit))

    async def update_role(self, user_id: int, role: Union[UserRole, str, None]) -> User:
        new_role = parse_role(role)
        user = await self.get_user(user_id)
        user.role = new_role
        await commit(self.db, "update user role")
        logger.info(f"User #{user_id} role set to {new_role.value}")
        return user

    async def delete_user(self, user_id: int) -> None:
        """
        Delete a user along with their cart.

        Orders are kept for the restaurant's records, so a user who has
        placed any order cannot be deleted.

        Raises:
            NotFoundError: user does not exist
            ConflictError: the user has orders, active or finished
        """
        await self.get_user(user_id)

        statuses = (
            await self.db.execute(select(Order.status).where(Order.user_id == user_id))
        ).scalars().all()
        if any(status in OPEN_ORDER_STATUSES for status in statuses):
            raise ConflictError("Cannot delete user with active orders")
        if statuses:
            raise ConflictError(
                "Cannot delete user with order history",
                detail=f"{len(statuses)} order(s) reference this user",
            )

        carts = select(CartItem.id).where(CartItem.user_id == user_id)
        for statement in (
            delete(CartItemCustomization).where(CartItemCustomization.cart_item_id.in_(carts)),
            delete(CartItem).where(CartItem.user_id == user_id),
            delete(User).where(User.id == user_id),
        ):
            await self.db.execute(statement.execution_options(synchronize_session=False))

        await commit(self.db, "delete user")
        self.db.expunge_all()
        logger.info(f"User #{user_id} deleted")

    async def user_stats(self) -> UserStats:
        today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        counted = select(func.count(User.id))

        total = (await self.db.execute(counted)).scalar() or 0
        today_count = (await self.db.execute(counted.where(User.created_at >= today))).scalar() or 0
        admins = (await self.db.execute(counted.where(User.role == UserRole.ADMIN))).scalar() or 0
        customers = (await self.db.execute(counted.where(User.role == UserRole.CUSTOMER))).scalar() or 0

        return UserStats(
            total_users=total,
            today_users=today_count,
            admin_count=admins,
            customer_count=customers,
        )
