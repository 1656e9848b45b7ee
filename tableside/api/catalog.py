"""
Catalog endpoints: categories, products, extras and components.

Reads are public; writes require an admin. Restaurant-scoped listings
live in the restaurants router.
"""

import logging

from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.api.deps import get_product_service, require_admin
from tableside.database import get_db
from tableside.models import User
from tableside.schemas import (
    CategoryCreate,
    CategoryDetailResponse,
    CategoryResponse,
    CategoryUpdate,
    ComponentCreate,
    ComponentResponse,
    ComponentUpdate,
    ErrorResponse,
    ExtraCreate,
    ExtraResponse,
    ExtraUpdate,
    MessageResponse,
    ProductCreate,
    ProductDeleteResponse,
    ProductResponse,
    ProductUpdate,
)
from tableside.services.catalog import (
    CategoryService,
    ComponentLink,
    CustomizationService,
    DeleteOutcome,
    ProductService,
)
from tableside.services.common import UNSET

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Catalog"])

NOT_FOUND = {404: {"model": ErrorResponse}}
CONFLICT = {409: {"model": ErrorResponse}}


def _given(body, field: str):
    """The field's value if the client sent it, else UNSET."""
    return getattr(body, field) if field in body.model_fields_set else UNSET


# =============================================================================
# CATEGORIES
# =============================================================================

@router.get("/categories/{category_id}", response_model=CategoryDetailResponse, responses=NOT_FOUND)
async def get_category(category_id: int, db: AsyncSession = Depends(get_db)) -> CategoryDetailResponse:
    """A category with its active products."""
    service = CategoryService(db)
    category = await service.get_category(category_id)
    products = await service.active_products(category_id)
    return CategoryDetailResponse(
        **CategoryResponse.model_validate(category).model_dump(),
        products=[ProductResponse.model_validate(p) for p in products],
    )


@router.post(
    "/categories",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
    responses=CONFLICT,
)
async def create_category(
    body: CategoryCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> CategoryResponse:
    category = await CategoryService(db).create_category(body.restaurant_id, body.name)
    return CategoryResponse.model_validate(category)


@router.patch("/categories/{category_id}", response_model=CategoryResponse, responses={**NOT_FOUND, **CONFLICT})
async def update_category(
    category_id: int,
    body: CategoryUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> CategoryResponse:
    return CategoryResponse.model_validate(await CategoryService(db).update_category(category_id, body.name))


@router.delete("/categories/{category_id}", response_model=MessageResponse, responses={**NOT_FOUND, **CONFLICT})
async def delete_category(
    category_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await CategoryService(db).delete_category(category_id)
    return MessageResponse(message="Category deleted")


# =============================================================================
# PRODUCTS
# =============================================================================

@router.get("/products/{product_id}", response_model=ProductResponse, responses=NOT_FOUND)
async def get_product(
    product_id: int,
    products: ProductService = Depends(get_product_service),
) -> ProductResponse:
    return ProductResponse.model_validate(await products.get_product(product_id))


@router.post("/products", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    body: ProductCreate,
    admin: User = Depends(require_admin),
    products: ProductService = Depends(get_product_service),
) -> ProductResponse:
    product = await products.create_product(
        restaurant_id=body.restaurant_id,
        category_id=body.category_id,
        name=body.name,
        base_price=body.base_price,
        description=body.description,
        image_url=body.image_url,
        components=[ComponentLink(c.component_id, c.is_removable) for c in body.components],
        extra_ids=body.extra_ids,
    )
    return ProductResponse.model_validate(product)


@router.patch("/products/{product_id}", response_model=ProductResponse, responses=NOT_FOUND)
async def update_product(
    product_id: int,
    body: ProductUpdate,
    admin: User = Depends(require_admin),
    products: ProductService = Depends(get_product_service),
) -> ProductResponse:
    fields = body.model_dump(exclude_unset=True, exclude={"components"})
    if body.components is not None:
        fields["components"] = [ComponentLink(c.component_id, c.is_removable) for c in body.components]
    return ProductResponse.model_validate(await products.update_product(product_id, fields))


@router.post("/products/{product_id}/toggle", response_model=ProductResponse, responses=NOT_FOUND)
async def toggle_product(
    product_id: int,
    admin: User = Depends(require_admin),
    products: ProductService = Depends(get_product_service),
) -> ProductResponse:
    return ProductResponse.model_validate(await products.toggle_status(product_id))


@router.post(
    "/products/{product_id}/image",
    response_model=ProductResponse,
    responses={400: {"model": ErrorResponse}, **NOT_FOUND},
    summary="Upload Product Image",
)
async def upload_image(
    product_id: int,
    file: UploadFile = File(...),
    admin: User = Depends(require_admin),
    products: ProductService = Depends(get_product_service),
) -> ProductResponse:
    data = await file.read()
    product = await products.attach_image(
        product_id,
        data=data,
        filename=file.filename or "upload",
        content_type=file.content_type or "",
    )
    return ProductResponse.model_validate(product)


@router.delete("/products/{product_id}", response_model=ProductDeleteResponse, responses=NOT_FOUND)
async def delete_product(
    product_id: int,
    admin: User = Depends(require_admin),
    products: ProductService = Depends(get_product_service),
) -> ProductDeleteResponse:
    deletion = await products.delete_product(product_id)
    if deletion.outcome == DeleteOutcome.SOFT_DELETED:
        message = "Product is referenced by orders and was deactivated instead"
    else:
        message = "Product deleted"
    return ProductDeleteResponse(outcome=deletion.outcome, product_id=deletion.product_id, message=message)


# =============================================================================
# EXTRAS & COMPONENTS
# =============================================================================

@router.get("/extras/{extra_id}", response_model=ExtraResponse, responses=NOT_FOUND)
async def get_extra(extra_id: int, db: AsyncSession = Depends(get_db)) -> ExtraResponse:
    return ExtraResponse.model_validate(await CustomizationService(db).get_extra(extra_id))


@router.post("/extras", response_model=ExtraResponse, status_code=status.HTTP_201_CREATED)
async def create_extra(
    body: ExtraCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ExtraResponse:
    extra = await CustomizationService(db).create_extra(body.restaurant_id, body.name, body.price)
    return ExtraResponse.model_validate(extra)


@router.patch("/extras/{extra_id}", response_model=ExtraResponse, responses=NOT_FOUND)
async def update_extra(
    extra_id: int,
    body: ExtraUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ExtraResponse:
    extra = await CustomizationService(db).update_extra(
        extra_id, name=_given(body, "name"), price=_given(body, "price")
    )
    return ExtraResponse.model_validate(extra)


@router.delete("/extras/{extra_id}", response_model=MessageResponse, responses={**NOT_FOUND, **CONFLICT})
async def delete_extra(
    extra_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await CustomizationService(db).delete_extra(extra_id)
    return MessageResponse(message="Extra deleted")


@router.get("/components/{component_id}", response_model=ComponentResponse, responses=NOT_FOUND)
async def get_component(component_id: int, db: AsyncSession = Depends(get_db)) -> ComponentResponse:
    return ComponentResponse.model_validate(await CustomizationService(db).get_component(component_id))


@router.post("/components", response_model=ComponentResponse, status_code=status.HTTP_201_CREATED)
async def create_component(
    body: ComponentCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ComponentResponse:
    component = await CustomizationService(db).create_component(body.restaurant_id, body.name, body.cost_impact)
    return ComponentResponse.model_validate(component)


@router.patch("/components/{component_id}", response_model=ComponentResponse, responses=NOT_FOUND)
async def update_component(
    component_id: int,
    body: ComponentUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ComponentResponse:
    component = await CustomizationService(db).update_component(
        component_id, name=_given(body, "name"), cost_impact=_given(body, "cost_impact")
    )
    return ComponentResponse.model_validate(component)


@router.delete(
    "/components/{component_id}",
    response_model=MessageResponse,
    responses={**NOT_FOUND, **CONFLICT},
)
async def delete_component(
    component_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await CustomizationService(db).delete_component(component_id)
    return MessageResponse(message="Component deleted")
