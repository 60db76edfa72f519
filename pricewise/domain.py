"""Domain entities consumed by the comparison engine.

Entities are frozen dataclasses: comparators receive them read-only and
never mutate an offer while scoring it.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pricewise.compare.errors import InvalidDataError
from pricewise.units import validate_and_convert
from pricewise.utils.timestamps import utcnow


class SourceType(str, Enum):
    """How an offer was captured."""

    MANUAL = "manual"
    URL = "url"
    OCR = "ocr"
    API = "api"


class PriceSource(str, Enum):
    """Origin of a historical price observation."""

    OFFER = "offer"
    MANUAL = "manual"
    API = "api"
    SCRAPED = "scraped"
    AGGREGATED = "aggregated"


@dataclass(frozen=True)
class InventoryItem:
    """A product being shopped for, compared in one canonical unit."""

    id: str
    name: str
    canonical_dimension: str        # mass, volume, count, length, area
    canonical_unit: str             # g, ml, unit, m, m2
    equivalence_factor: float = 1.0
    shelf_life_sensitive: bool = False
    usage_rate_per_day: Optional[float] = None
    notes: Optional[str] = None
    deleted_at: Optional[datetime] = None


@dataclass(frozen=True)
class Supplier:
    """A named price source."""

    id: str
    name: str
    website: Optional[str] = None
    shipping_policy: Optional[str] = None
    quality_rating: Optional[float] = None
    notes: Optional[str] = None
    deleted_at: Optional[datetime] = None


@dataclass(frozen=True)
class OfferMetrics:
    """Derived per-canonical-unit figures for an offer."""

    amount_canonical: float
    price_per_canonical_excl_shipping: float
    price_per_canonical_incl_shipping: float
    effective_price_per_canonical: float


def compute_offer_metrics(
    total_price: float,
    amount: float,
    amount_unit: str,
    item: InventoryItem,
    shipping_cost: Optional[float] = None,
    shipping_included: bool = False,
    is_tax_included: bool = True,
    tax_rate: Optional[float] = None,
) -> OfferMetrics:
    """
    Derive canonical amount and per-canonical prices for an offer.

    The canonical amount is the offer amount converted to the item's
    canonical unit, scaled by the item's equivalence factor.

    Raises:
        InvalidDataError: If the amount cannot be converted or is not positive
    """
    conversion = validate_and_convert(amount, amount_unit, item.canonical_dimension)
    if not conversion.is_valid:
        raise InvalidDataError(conversion.error_message)

    factor = item.equivalence_factor or 1.0
    if factor <= 0:
        raise InvalidDataError("Equivalence factor must be positive")

    amount_canonical = conversion.canonical_amount * factor
    if amount_canonical <= 0:
        raise InvalidDataError("Amount must be greater than zero")

    shipping = shipping_cost or 0.0
    total_with_shipping = total_price if shipping_included else total_price + shipping
    effective_total = total_with_shipping
    if not is_tax_included and tax_rate:
        effective_total = total_with_shipping * (1 + tax_rate)

    return OfferMetrics(
        amount_canonical=amount_canonical,
        price_per_canonical_excl_shipping=total_price / amount_canonical,
        price_per_canonical_incl_shipping=total_with_shipping / amount_canonical,
        effective_price_per_canonical=effective_total / amount_canonical,
    )


@dataclass(frozen=True)
class Offer:
    """A supplier's price quote for an inventory item at a point in time."""

    id: str
    inventory_item_id: str
    supplier_id: str
    total_price: float
    amount: float
    amount_unit: str
    amount_canonical: float
    price_per_canonical_excl_shipping: float
    price_per_canonical_incl_shipping: float
    effective_price_per_canonical: float
    currency: str = "USD"
    supplier_name_snapshot: Optional[str] = None
    supplier_url: Optional[str] = None
    source_type: SourceType = SourceType.MANUAL
    shipping_cost: Optional[float] = None
    shipping_included: bool = False
    is_tax_included: bool = True
    tax_rate: Optional[float] = None
    quality_rating: Optional[int] = None
    notes: Optional[str] = None
    observed_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @classmethod
    def capture(
        cls,
        item: InventoryItem,
        supplier_id: str,
        total_price: float,
        amount: float,
        amount_unit: str,
        *,
        id: Optional[str] = None,
        observed_at: Optional[datetime] = None,
        **fields: Any,
    ) -> "Offer":
        """Build an offer for ``item``, deriving its canonical metrics."""
        metrics = compute_offer_metrics(
            total_price,
            amount,
            amount_unit,
            item,
            shipping_cost=fields.get("shipping_cost"),
            shipping_included=fields.get("shipping_included", False),
            is_tax_included=fields.get("is_tax_included", True),
            tax_rate=fields.get("tax_rate"),
        )
        return cls(
            id=id or str(uuid.uuid4()),
            inventory_item_id=item.id,
            supplier_id=supplier_id,
            total_price=total_price,
            amount=amount,
            amount_unit=amount_unit,
            amount_canonical=metrics.amount_canonical,
            price_per_canonical_excl_shipping=metrics.price_per_canonical_excl_shipping,
            price_per_canonical_incl_shipping=metrics.price_per_canonical_incl_shipping,
            effective_price_per_canonical=metrics.effective_price_per_canonical,
            observed_at=observed_at or utcnow(),
            **fields,
        )

    @property
    def is_complete(self) -> bool:
        """True when the offer carries a usable price and amount."""
        return (
            self.total_price is not None
            and self.total_price > 0
            and self.amount is not None
            and self.amount > 0
            and self.amount_canonical is not None
            and self.amount_canonical > 0
        )


@dataclass(frozen=True)
class HistoricalPrice:
    """One observed price point in an item's time series."""

    inventory_item_id: str
    price: float
    observed_at: datetime
    currency: str = "USD"
    unit: str = "unit"
    quantity: float = 1.0
    source: PriceSource = PriceSource.MANUAL
    supplier_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None

    @property
    def confidence(self) -> Optional[float]:
        return self.metadata.get("confidence") if self.metadata else None
