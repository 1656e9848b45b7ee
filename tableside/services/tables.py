"""
Tables & Availability

Table metadata CRUD plus the availability checker. Availability is a
derived query: a table is taken at time ``t`` when some reservation on it
falls inside ``[t - window, t + window]`` (both ends inclusive) and the
reserving order is still in a blocking status.

Only PENDING and CONFIRMED orders block by default. A dine-in order that is
already PREPARING or READY does not keep its table from being booked again.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.exceptions import ConflictError, NotFoundError, ValidationError
from tableside.models import FulfillmentDetails, Order, OrderStatus, Table
from tableside.services.common import UNSET, commit

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = timedelta(hours=2)
DEFAULT_BLOCKING_STATUSES = (OrderStatus.PENDING, OrderStatus.CONFIRMED)

TERMINAL_STATUSES = (OrderStatus.COMPLETED, OrderStatus.CANCELLED)

DUPLICATE_TABLE = "Table with this number already exists"


class TableAvailabilityChecker:
    """
    Booking-conflict queries.

    Args:
        db: Session to query with
        window: Half-width of the conflict window around the requested time
        blocking_statuses: Order statuses whose reservations hold the table
    """

    def __init__(
        self,
        db: AsyncSession,
        window: timedelta = DEFAULT_WINDOW,
        blocking_statuses: Iterable[OrderStatus] = DEFAULT_BLOCKING_STATUSES,
    ):
        self.db = db
        self.window = window
        self.blocking_statuses = tuple(OrderStatus(s) for s in blocking_statuses)

    def _conflicts(self, at: datetime):
        """Reservations that collide with ``at``, as a selectable of table ids."""
        return (
            select(FulfillmentDetails.table_id)
            .join(Order, Order.id == FulfillmentDetails.order_id)
            .where(
                FulfillmentDetails.table_id.is_not(None),
                FulfillmentDetails.reservation_time >= at - self.window,
                FulfillmentDetails.reservation_time <= at + self.window,
                Order.status.in_(self.blocking_statuses),
            )
        )

    async def is_available(self, table_id: int, at: datetime) -> bool:
        """
        Raises:
            NotFoundError: table does not exist
        """
        if await self.db.get(Table, table_id) is None:
            raise NotFoundError("Table not found")

        result = await self.db.execute(
            self._conflicts(at).where(FulfillmentDetails.table_id == table_id).limit(1)
        )
        return result.first() is None

    async def list_available(
        self,
        restaurant_id: int,
        at: datetime,
        party_size: Optional[int] = None,
    ) -> list[Table]:
        """
        Tables of a restaurant that can seat ``party_size`` and have no
        conflicting reservation, ordered by table number.
        """
        query = select(Table).where(Table.restaurant_id == restaurant_id)
        if party_size:
            query = query.where(Table.capacity >= party_size)

        candidates = (await self.db.execute(query.order_by(Table.table_number, Table.id))).scalars().all()

        reserved = set(
            (
                await self.db.execute(
                    self._conflicts(at)
                    .join(Table, Table.id == FulfillmentDetails.table_id)
                    .where(Table.restaurant_id == restaurant_id)
                )
            ).scalars().all()
        )

        return [table for table in candidates if table.id not in reserved]


class TableService:
    """Table metadata for a restaurant; numbers are unique per restaurant."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_tables(self, restaurant_id: int) -> list[Table]:
        result = await self.db.execute(
            select(Table).where(Table.restaurant_id == restaurant_id).order_by(Table.table_number)
        )
        return list(result.scalars().all())

    async def get_table(self, table_id: int) -> Table:
        table = await self.db.get(Table, table_id)
        if table is None:
            raise NotFoundError("Table not found")
        return table

    async def active_reservations(self, table_id: int) -> list[FulfillmentDetails]:
        """Reservations on this table whose orders have not finished."""
        result = await self.db.execute(
            select(FulfillmentDetails)
            .join(Order, Order.id == FulfillmentDetails.order_id)
            .where(
                FulfillmentDetails.table_id == table_id,
                Order.status.not_in(TERMINAL_STATUSES),
            )
            .order_by(FulfillmentDetails.reservation_time)
        )
        return list(result.scalars().all())

    async def _ensure_unique(self, restaurant_id: int, number: str, exclude_id: Optional[int] = None) -> None:
        query = select(Table.id).where(
            Table.restaurant_id == restaurant_id,
            Table.table_number == number,
        )
        if exclude_id is not None:
            query = query.where(Table.id != exclude_id)
        if (await self.db.execute(query)).first() is not None:
            raise ConflictError(DUPLICATE_TABLE)

    @staticmethod
    def _clean_number(table_number: Optional[str]) -> str:
        number = (table_number or "").strip()
        if not number:
            raise ValidationError("Table number is required")
        return number

    @staticmethod
    def _clean_capacity(capacity: Optional[int]) -> Optional[int]:
        if capacity is None:
            return None
        if capacity < 1:
            raise ValidationError("Capacity must be at least 1")
        return capacity

    async def create_table(self, restaurant_id: int, table_number: str, capacity: Optional[int] = None) -> Table:
        if not restaurant_id:
            raise ValidationError("Restaurant ID is required")
        number = self._clean_number(table_number)
        await self._ensure_unique(restaurant_id, number)

        table = Table(
            restaurant_id=restaurant_id,
            table_number=number,
            capacity=self._clean_capacity(capacity),
        )
        self.db.add(table)
        await commit(self.db, "create table", conflict_message=DUPLICATE_TABLE)
        logger.info(f"Table {number} created for restaurant #{restaurant_id}")
        return table

    async def update_table(self, table_id: int, table_number=UNSET, capacity=UNSET) -> Table:
        table = await self.get_table(table_id)

        if table_number is not UNSET:
            number = self._clean_number(table_number)
            await self._ensure_unique(table.restaurant_id, number, exclude_id=table.id)
            table.table_number = number
        if capacity is not UNSET:
            table.capacity = self._clean_capacity(capacity)

        await commit(self.db, "update table", conflict_message=DUPLICATE_TABLE)
        return table

    async def delete_table(self, table_id: int) -> None:
        """
        Raises:
            ConflictError: the table still has unfinished dine-in orders
        """
        await self.get_table(table_id)

        if await self.active_reservations(table_id):
            raise ConflictError("Cannot delete table with active orders")

        in_history = (
            await self.db.execute(
                select(func.count(FulfillmentDetails.id)).where(FulfillmentDetails.table_id == table_id)
            )
        ).scalar()
        if in_history:
            # Finished orders keep their details; only the table link is dropped
            await self.db.execute(
                update(FulfillmentDetails)
                .where(FulfillmentDetails.table_id == table_id)
                .values(table_id=None)
                .execution_options(synchronize_session=False)
            )

        await self.db.execute(delete(Table).where(Table.id == table_id))
        await commit(self.db, "delete table")
        logger.info(f"Table #{table_id} deleted")
