"""
Pricing Engine

Computes a line's final unit price from a product's base price plus the
signed deltas of its customizations, validating each customization against
the options configured on the product.

Extras add their price; removed components subtract their cost impact.
The sum is plain Decimal addition, so the order of selections never
changes the result.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional, Union

from tableside.exceptions import InvalidCustomizationError
from tableside.models import CustomizationType, Product


@dataclass(frozen=True)
class Selection:
    """A requested customization, as received from the client."""
    type: Union[CustomizationType, str]
    reference_id: int


@dataclass(frozen=True)
class CustomizationSnapshot:
    """Frozen name and signed price impact of one applied customization."""
    type: CustomizationType
    reference_id: int
    name_snapshot: str
    price_impact: Decimal


@dataclass(frozen=True)
class PricedLine:
    base_price: Decimal
    final_price: Decimal
    customizations: tuple[CustomizationSnapshot, ...]


def _coerce_type(raw: Union[CustomizationType, str]) -> CustomizationType:
    if isinstance(raw, CustomizationType):
        return raw
    try:
        return CustomizationType(str(raw).upper())
    except ValueError:
        raise InvalidCustomizationError(f"Unknown customization type: {raw}")


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def price_selection(product: Product, selection: Selection) -> CustomizationSnapshot:
    """
    Validate one selection against the product and snapshot it.

    Raises:
        InvalidCustomizationError: option not offered on the product, or a
            component that is not removable
    """
    kind = _coerce_type(selection.type)

    if kind == CustomizationType.EXTRA:
        link = next(
            (pe for pe in product.extras if pe.extra_id == selection.reference_id),
            None,
        )
        if link is None:
            raise InvalidCustomizationError(
                f"Extra {selection.reference_id} is not available for this product"
            )
        return CustomizationSnapshot(
            type=kind,
            reference_id=selection.reference_id,
            name_snapshot=link.extra.name,
            price_impact=_as_decimal(link.extra.price),
        )

    link = next(
        (pc for pc in product.components if pc.component_id == selection.reference_id),
        None,
    )
    if link is None:
        raise InvalidCustomizationError(
            f"Component {selection.reference_id} is not available for this product"
        )
    if not link.is_removable:
        raise InvalidCustomizationError(
            f"Component {link.component.name} cannot be removed"
        )
    return CustomizationSnapshot(
        type=kind,
        reference_id=selection.reference_id,
        name_snapshot=link.component.name,
        price_impact=-_as_decimal(link.component.cost_impact),
    )


def price_line(
    product: Product,
    selections: Optional[Iterable[Selection]] = None,
) -> PricedLine:
    """
    Price one cart line.

    Args:
        product: Product with its ``components`` and ``extras`` loaded
        selections: Requested customizations, in client order

    Returns:
        PricedLine with base price, final unit price and one snapshot per
        selection (in the order given)
    """
    base_price = _as_decimal(product.base_price)
    snapshots = tuple(price_selection(product, s) for s in (selections or ()))
    final_price = base_price + sum((s.price_impact for s in snapshots), Decimal("0"))

    return PricedLine(
        base_price=base_price,
        final_price=final_price,
        customizations=snapshots,
    )
