"""
Restaurant endpoints, plus the restaurant-scoped catalog and table
listings (``/api/restaurants/{id}/...``).
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.api.deps import get_product_service, require_admin
from tableside.database import get_db
from tableside.models import User
from tableside.schemas import (
    CategoryResponse,
    ComponentResponse,
    ErrorResponse,
    ExtraResponse,
    MessageResponse,
    ProductResponse,
    RestaurantCreate,
    RestaurantDetailResponse,
    RestaurantPublicResponse,
    RestaurantResponse,
    RestaurantUpdate,
    TableResponse,
)
from tableside.services.catalog import (
    CategoryService,
    CustomizationService,
    ProductFilter,
    ProductService,
)
from tableside.services.restaurants import RestaurantService
from tableside.services.tables import TableService

router = APIRouter(prefix="/api/restaurants", tags=["Restaurants"])


# =============================================================================
# PROFILE
# =============================================================================

@router.get("/{restaurant_id}/public", response_model=RestaurantPublicResponse)
async def public_info(restaurant_id: int, db: AsyncSession = Depends(get_db)) -> RestaurantPublicResponse:
    """Customer-facing details: no tax configuration or audit timestamps."""
    restaurant = await RestaurantService(db).get_restaurant(restaurant_id)
    return RestaurantPublicResponse.model_validate(restaurant)


@router.get(
    "/{restaurant_id}",
    response_model=RestaurantDetailResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_restaurant(
    restaurant_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> RestaurantDetailResponse:
    service = RestaurantService(db)
    restaurant = await service.get_restaurant(restaurant_id)
    counts = await service.catalog_counts(restaurant_id)
    return RestaurantDetailResponse(
        **RestaurantResponse.model_validate(restaurant).model_dump(),
        categories_count=counts["categories"],
        products_count=counts["products"],
        tables_count=counts["tables"],
    )


@router.post(
    "",
    response_model=RestaurantResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def create_restaurant(
    body: RestaurantCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> RestaurantResponse:
    fields = body.model_dump(exclude_unset=True, exclude={"name"})
    restaurant = await RestaurantService(db).create_restaurant(body.name, **fields)
    return RestaurantResponse.model_validate(restaurant)


@router.patch("/{restaurant_id}", response_model=RestaurantResponse, responses={400: {"model": ErrorResponse}})
async def update_restaurant(
    restaurant_id: int,
    body: RestaurantUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> RestaurantResponse:
    restaurant = await RestaurantService(db).update_restaurant(
        restaurant_id, body.model_dump(exclude_unset=True)
    )
    return RestaurantResponse.model_validate(restaurant)


@router.delete(
    "/{restaurant_id}",
    response_model=MessageResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def delete_restaurant(
    restaurant_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await RestaurantService(db).delete_restaurant(restaurant_id)
    return MessageResponse(message="Restaurant deleted")


# =============================================================================
# SCOPED LISTINGS
# =============================================================================

@router.get("/{restaurant_id}/categories", response_model=list[CategoryResponse], tags=["Catalog"])
async def list_categories(restaurant_id: int, db: AsyncSession = Depends(get_db)) -> list[CategoryResponse]:
    categories = await CategoryService(db).list_categories(restaurant_id)
    return [CategoryResponse.model_validate(c) for c in categories]


@router.get("/{restaurant_id}/products", response_model=list[ProductResponse], tags=["Catalog"])
async def list_products(
    restaurant_id: int,
    category_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    is_active: Optional[bool] = Query(None),
    products: ProductService = Depends(get_product_service),
) -> list[ProductResponse]:
    filters = ProductFilter(category_id=category_id, search=search, is_active=is_active)
    return [ProductResponse.model_validate(p) for p in await products.list_products(restaurant_id, filters)]


@router.get("/{restaurant_id}/extras", response_model=list[ExtraResponse], tags=["Catalog"])
async def list_extras(restaurant_id: int, db: AsyncSession = Depends(get_db)) -> list[ExtraResponse]:
    rows = await CustomizationService(db).list_extras(restaurant_id)
    return [
        ExtraResponse.model_validate(extra).model_copy(update={"product_count": count})
        for extra, count in rows
    ]


@router.get("/{restaurant_id}/components", response_model=list[ComponentResponse], tags=["Catalog"])
async def list_components(restaurant_id: int, db: AsyncSession = Depends(get_db)) -> list[ComponentResponse]:
    rows = await CustomizationService(db).list_components(restaurant_id)
    return [
        ComponentResponse.model_validate(component).model_copy(update={"product_count": count})
        for component, count in rows
    ]


@router.get("/{restaurant_id}/tables", response_model=list[TableResponse], tags=["Tables"])
async def list_tables(restaurant_id: int, db: AsyncSession = Depends(get_db)) -> list[TableResponse]:
    return [TableResponse.model_validate(t) for t in await TableService(db).list_tables(restaurant_id)]
