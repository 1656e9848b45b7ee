"""
Table endpoints: metadata CRUD (admin) and availability lookups.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.api.deps import get_availability_checker, require_admin
from tableside.database import get_db
from tableside.models import User
from tableside.schemas import (
    ErrorResponse,
    MessageResponse,
    TableAvailabilityResponse,
    TableCreate,
    TableResponse,
    TableUpdate,
)
from tableside.services.common import UNSET
from tableside.services.tables import TableAvailabilityChecker, TableService

router = APIRouter(prefix="/api/tables", tags=["Tables"])

NOT_FOUND = {404: {"model": ErrorResponse}}


@router.get("/available", response_model=list[TableResponse])
async def list_available(
    restaurant_id: int = Query(...),
    reservation_time: datetime = Query(..., description="Requested seating time"),
    party_size: Optional[int] = Query(None, ge=1),
    checker: TableAvailabilityChecker = Depends(get_availability_checker),
) -> list[TableResponse]:
    """Tables with room for the party and no conflicting reservation."""
    tables = await checker.list_available(restaurant_id, reservation_time, party_size)
    return [TableResponse.model_validate(t) for t in tables]


@router.get("/{table_id}", response_model=TableResponse, responses=NOT_FOUND)
async def get_table(table_id: int, db: AsyncSession = Depends(get_db)) -> TableResponse:
    return TableResponse.model_validate(await TableService(db).get_table(table_id))


@router.get("/{table_id}/availability", response_model=TableAvailabilityResponse, responses=NOT_FOUND)
async def check_availability(
    table_id: int,
    reservation_time: datetime = Query(...),
    checker: TableAvailabilityChecker = Depends(get_availability_checker),
) -> TableAvailabilityResponse:
    available = await checker.is_available(table_id, reservation_time)
    return TableAvailabilityResponse(table_id=table_id, reservation_time=reservation_time, available=available)


@router.post(
    "",
    response_model=TableResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def create_table(
    body: TableCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> TableResponse:
    table = await TableService(db).create_table(body.restaurant_id, body.table_number, body.capacity)
    return TableResponse.model_validate(table)


@router.patch("/{table_id}", response_model=TableResponse, responses={**NOT_FOUND, 409: {"model": ErrorResponse}})
async def update_table(
    table_id: int,
    body: TableUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> TableResponse:
    provided = body.model_fields_set
    table = await TableService(db).update_table(
        table_id,
        table_number=body.table_number if "table_number" in provided else UNSET,
        capacity=body.capacity if "capacity" in provided else UNSET,
    )
    return TableResponse.model_validate(table)


@router.delete("/{table_id}", response_model=MessageResponse, responses={**NOT_FOUND, 409: {"model": ErrorResponse}})
async def delete_table(
    table_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await TableService(db).delete_table(table_id)
    return MessageResponse(message="Table deleted")
