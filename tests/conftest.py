"""Shared fixtures: domain builders and in-memory repositories."""

from collections import Counter
from dataclasses import replace
from datetime import timedelta
from typing import Any, Optional

import pytest

from pricewise.compare.statistics import calculate_price_statistics
from pricewise.domain import HistoricalPrice, InventoryItem, Offer, PriceSource, Supplier
from pricewise.repositories.base import PriceTrendPoint
from pricewise.utils.timestamps import utcnow


class InMemoryRepositories:
    """Implements every repository protocol over plain lists, counting calls."""

    def __init__(self, items=(), offers=(), suppliers=(), historical_prices=()):
        self.items = {item.id: item for item in items}
        self.offers = list(offers)
        self.suppliers = list(suppliers)
        self.historical_prices = list(historical_prices)
        self.calls = Counter()
        self.fail_offers_with: Optional[Exception] = None

    # Factory protocol
    def get_inventory_item_repository(self):
        return self

    def get_offer_repository(self):
        return self

    def get_supplier_repository(self):
        return self

    def get_historical_price_repository(self):
        return self

    # Inventory items
    async def find_by_id(self, id: str) -> Optional[InventoryItem]:
        self.calls["find_by_id"] += 1
        return self.items.get(id)

    # Offers
    async def find_where(
        self,
        filters: dict[str, Any],
        *,
        include_deleted: bool = False,
        order_by: str = "observed_at",
        descending: bool = True,
    ) -> list[Offer]:
        self.calls["find_where"] += 1
        if self.fail_offers_with is not None:
            raise self.fail_offers_with
        offers = [
            o for o in self.offers
            if all(getattr(o, k) == v for k, v in filters.items())
            and (include_deleted or o.deleted_at is None)
        ]
        return sorted(offers, key=lambda o: getattr(o, order_by), reverse=descending)

    # Suppliers
    async def find_all(self) -> list[Supplier]:
        self.calls["find_all"] += 1
        return [s for s in self.suppliers if s.deleted_at is None]

    # Historical prices
    def _matching(self, inventory_item_id, start_date=None, end_date=None, supplier_id=None, source=None):
        return [
            p for p in self.historical_prices
            if p.inventory_item_id == inventory_item_id
            and (start_date is None or p.observed_at >= start_date)
            and (end_date is None or p.observed_at <= end_date)
            and (not supplier_id or p.supplier_id == supplier_id)
            and (not source or p.source == PriceSource(source))
        ]

    async def create(self, price: HistoricalPrice) -> HistoricalPrice:
        return (await self.create_many([price]))[0]

    async def create_many(self, prices):
        stored = []
        for price in prices:
            if price.id is None:
                price = replace(price, id=f"hp-{len(self.historical_prices) + 1}")
            self.historical_prices.append(price)
            stored.append(price)
        return stored

    async def get_historical_prices_for_item(
        self, inventory_item_id, *, start_date=None, end_date=None,
        supplier_id=None, source=None, limit=None, descending=False,
    ):
        prices = sorted(
            self._matching(inventory_item_id, start_date, end_date, supplier_id, source),
            key=lambda p: p.observed_at,
            reverse=descending,
        )
        return prices[:limit] if limit else prices

    async def get_price_statistics(self, inventory_item_id, **filters):
        prices = self._matching(inventory_item_id, **filters)
        return calculate_price_statistics(prices) if prices else None

    async def get_best_historical_price(self, inventory_item_id, **filters):
        prices = self._matching(inventory_item_id, **filters)
        return min(prices, key=lambda p: p.price) if prices else None

    async def get_price_trend(self, inventory_item_id, *, group_by="day", **filters):
        buckets: dict[str, list[float]] = {}
        for price in self._matching(inventory_item_id, **filters):
            buckets.setdefault(price.observed_at.strftime("%Y-%m-%d"), []).append(price.price)
        return [
            PriceTrendPoint(date=d, price=sum(v) / len(v), count=len(v))
            for d, v in sorted(buckets.items())
        ]

    async def cleanup_old_data(self, older_than_days: int) -> int:
        cutoff = utcnow() - timedelta(days=older_than_days)
        kept = [p for p in self.historical_prices if p.observed_at >= cutoff]
        deleted = len(self.historical_prices) - len(kept)
        self.historical_prices = kept
        return deleted


@pytest.fixture
def item() -> InventoryItem:
    return InventoryItem(
        id="item-rice",
        name="Basmati Rice",
        canonical_dimension="mass",
        canonical_unit="g",
    )


@pytest.fixture
def suppliers() -> list[Supplier]:
    return [
        Supplier(id="sup-a", name="Corner Grocer", website="https://grocer.example"),
        Supplier(id="sup-b", name="Bulk Barn"),
    ]


@pytest.fixture
def make_offer(item):
    """Build an offer for the rice item; keyword fields override defaults."""

    def _make(id: str, total_price: float, supplier_id: str = "sup-a", amount: float = 1,
              amount_unit: str = "kg", **fields) -> Offer:
        fields.setdefault("observed_at", utcnow() - timedelta(hours=1))
        return Offer.capture(item, supplier_id, total_price, amount, amount_unit, id=id, **fields)

    return _make


@pytest.fixture
def make_history(item):
    """Build offer-sourced historical prices, one per day ending today."""

    def _make(values, supplier_id: str = "sup-a", source=PriceSource.OFFER, confidence=0.8):
        now = utcnow()
        return [
            HistoricalPrice(
                inventory_item_id=item.id,
                price=value,
                observed_at=now - timedelta(days=len(values) - 1 - i, minutes=5),
                source=source,
                supplier_id=supplier_id,
                metadata={"confidence": confidence},
            )
            for i, value in enumerate(values)
        ]

    return _make


@pytest.fixture
def repositories(item, suppliers, make_offer) -> InMemoryRepositories:
    return InMemoryRepositories(
        items=[item],
        offers=[make_offer("offer-dear", 12.0), make_offer("offer-cheap", 8.0, supplier_id="sup-b")],
        suppliers=suppliers,
    )
