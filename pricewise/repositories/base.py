"""Repository interfaces consumed by the comparison engine.

The engine and services only depend on these protocols; any storage that
implements them can back a comparison. ``pricewise.repositories.sql``
provides the SQLAlchemy implementation.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Protocol, Sequence

from pricewise.compare.types import PriceStatistics
from pricewise.domain import HistoricalPrice, InventoryItem, Offer, PriceSource, Supplier


@dataclass
class PriceTrendPoint:
    """Average observed price for one time bucket."""

    date: str           # Bucket label: YYYY-MM-DD, YYYY-Www or YYYY-MM
    price: float
    count: int


class InventoryItemRepository(Protocol):
    async def find_by_id(self, id: str) -> Optional[InventoryItem]:
        ...


class OfferRepository(Protocol):
    async def find_where(
        self,
        filters: dict[str, Any],
        *,
        include_deleted: bool = False,
        order_by: str = "observed_at",
        descending: bool = True,
    ) -> list[Offer]:
        ...


class SupplierRepository(Protocol):
    async def find_all(self) -> list[Supplier]:
        ...


class HistoricalPriceRepository(Protocol):
    async def create(self, price: HistoricalPrice) -> HistoricalPrice:
        ...

    async def create_many(self, prices: Sequence[HistoricalPrice]) -> list[HistoricalPrice]:
        ...

    async def get_historical_prices_for_item(
        self,
        inventory_item_id: str,
        *,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        supplier_id: Optional[str] = None,
        source: Optional[PriceSource] = None,
        limit: Optional[int] = None,
        descending: bool = False,
    ) -> list[HistoricalPrice]:
        ...

    async def get_price_statistics(
        self,
        inventory_item_id: str,
        *,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        supplier_id: Optional[str] = None,
        source: Optional[PriceSource] = None,
    ) -> Optional[PriceStatistics]:
        ...

    async def get_best_historical_price(
        self,
        inventory_item_id: str,
        *,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        supplier_id: Optional[str] = None,
        source: Optional[PriceSource] = None,
    ) -> Optional[HistoricalPrice]:
        ...

    async def get_price_trend(
        self,
        inventory_item_id: str,
        *,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        supplier_id: Optional[str] = None,
        source: Optional[PriceSource] = None,
        group_by: str = "day",
    ) -> list[PriceTrendPoint]:
        ...

    async def cleanup_old_data(self, older_than_days: int) -> int:
        ...


class RepositoryFactory(Protocol):
    """Supplies the repositories the engine and services read from."""

    def get_inventory_item_repository(self) -> InventoryItemRepository:
        ...

    def get_offer_repository(self) -> OfferRepository:
        ...

    def get_supplier_repository(self) -> SupplierRepository:
        ...

    def get_historical_price_repository(self) -> HistoricalPriceRepository:
        ...
