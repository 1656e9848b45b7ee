"""
Shared helpers for the service layer: transaction commit, money rounding,
text normalisation and the "field not provided" sentinel used by partial
updates.
"""

import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.exceptions import ConflictError, UnexpectedError, ValidationError

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


# Distinguishes "leave unchanged" from an explicit None in partial updates
UNSET: Any = _Unset()


def quantize_money(value: Decimal) -> Decimal:
    """Round to cents, half-up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_money(value: Any, field: str, allow_negative: bool = False) -> Decimal:
    """Parse a client-supplied amount into a Decimal."""
    if value is None or value == "":
        raise ValidationError(f"Valid {field} is required")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid {field}")
    if not amount.is_finite():
        raise ValidationError(f"Invalid {field}")
    if not allow_negative and amount < 0:
        raise ValidationError(f"Invalid {field}")
    return quantize_money(amount)


def clean_text(value: Optional[str]) -> Optional[str]:
    """Strip whitespace; blank strings become None."""
    if value is None:
        return None
    value = value.strip()
    return value or None


async def commit(db: AsyncSession, action: str, conflict_message: Optional[str] = None) -> None:
    """
    Commit the current unit of work as one transaction.

    On failure the session is rolled back, so no part of a multi-row write
    is ever visible.

    Raises:
        ConflictError: a unique constraint was violated and
            ``conflict_message`` was given
        UnexpectedError: any other storage failure
    """
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        if conflict_message:
            logger.info(f"{action}: integrity conflict ({e.orig})")
            raise ConflictError(conflict_message) from e
        logger.exception(f"{action}: integrity error")
        raise UnexpectedError(f"Failed to {action}") from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception(f"{action}: storage error")
        raise UnexpectedError(f"Failed to {action}") from e
