"""SQLAlchemy-backed repositories.

Each repository opens a short-lived session per call from the session
factory it is given, so one factory can serve concurrent comparisons.
"""

import logging
import statistics
import uuid
from dataclasses import fields, replace
from datetime import datetime, timedelta
from typing import Any, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pricewise.compare.types import PriceStatistics, TimePeriod
from pricewise.db.models import (
    HistoricalPriceRecord,
    InventoryItemRecord,
    OfferRecord,
    SupplierRecord,
)
from pricewise.domain import (
    HistoricalPrice,
    InventoryItem,
    Offer,
    PriceSource,
    SourceType,
    Supplier,
)
from pricewise.repositories.base import PriceTrendPoint
from pricewise.utils.timestamps import to_naive_utc, utcnow

logger = logging.getLogger(__name__)

TREND_GROUPINGS = ("day", "week", "month")


def _to_item(row: InventoryItemRecord) -> InventoryItem:
    return InventoryItem(
        id=row.id,
        name=row.name,
        canonical_dimension=row.canonical_dimension,
        canonical_unit=row.canonical_unit,
        equivalence_factor=row.equivalence_factor,
        shelf_life_sensitive=row.shelf_life_sensitive,
        usage_rate_per_day=row.usage_rate_per_day,
        notes=row.notes,
        deleted_at=row.deleted_at,
    )


def _to_supplier(row: SupplierRecord) -> Supplier:
    return Supplier(
        id=row.id,
        name=row.name,
        website=row.website,
        shipping_policy=row.shipping_policy,
        quality_rating=row.quality_rating,
        notes=row.notes,
        deleted_at=row.deleted_at,
    )


def _to_offer(row: OfferRecord) -> Offer:
    values = {f.name: getattr(row, f.name) for f in fields(Offer)}
    values["source_type"] = SourceType(row.source_type)
    return Offer(**values)


def _to_historical_price(row: HistoricalPriceRecord) -> HistoricalPrice:
    return HistoricalPrice(
        id=row.id,
        inventory_item_id=row.inventory_item_id,
        supplier_id=row.supplier_id,
        price=row.price,
        currency=row.currency,
        unit=row.unit,
        quantity=row.quantity,
        source=PriceSource(row.source),
        metadata=dict(row.price_metadata or {}),
        observed_at=row.observed_at,
    )


def _bucket_label(observed_at: datetime, group_by: str) -> str:
    if group_by == "week":
        year, week, _ = observed_at.isocalendar()
        return f"{year}-W{week:02d}"
    if group_by == "month":
        return observed_at.strftime("%Y-%m")
    return observed_at.strftime("%Y-%m-%d")


class _SqlRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory


class SqlInventoryItemRepository(_SqlRepository):
    async def find_by_id(self, id: str) -> Optional[InventoryItem]:
        async with self.session_factory() as session:
            row = await session.get(InventoryItemRecord, id)
            if row is None or row.deleted_at is not None:
                return None
            return _to_item(row)

    async def create(self, item: InventoryItem) -> InventoryItem:
        async with self.session_factory() as session:
            session.add(InventoryItemRecord(
                id=item.id,
                name=item.name,
                canonical_dimension=item.canonical_dimension,
                canonical_unit=item.canonical_unit,
                equivalence_factor=item.equivalence_factor,
                shelf_life_sensitive=item.shelf_life_sensitive,
                usage_rate_per_day=item.usage_rate_per_day,
                notes=item.notes,
                deleted_at=item.deleted_at,
            ))
            await session.commit()
        return item


class SqlSupplierRepository(_SqlRepository):
    async def find_all(self) -> list[Supplier]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(SupplierRecord)
                .where(SupplierRecord.deleted_at.is_(None))
                .order_by(SupplierRecord.name)
            )
            return [_to_supplier(row) for row in result.scalars()]

    async def create(self, supplier: Supplier) -> Supplier:
        async with self.session_factory() as session:
            session.add(SupplierRecord(
                id=supplier.id,
                name=supplier.name,
                website=supplier.website,
                shipping_policy=supplier.shipping_policy,
                quality_rating=supplier.quality_rating,
                notes=supplier.notes,
                deleted_at=supplier.deleted_at,
            ))
            await session.commit()
        return supplier


class SqlOfferRepository(_SqlRepository):
    async def find_where(
        self,
        filters: dict[str, Any],
        *,
        include_deleted: bool = False,
        order_by: str = "observed_at",
        descending: bool = True,
    ) -> list[Offer]:
        """
        Offers whose columns equal every value in ``filters``.

        Raises:
            ValueError: If a filter or the order column is not an offer column
        """
        columns = OfferRecord.__table__.columns
        unknown = [name for name in [*filters, order_by] if name not in columns]
        if unknown:
            raise ValueError(f"Unknown offer column(s): {', '.join(unknown)}")

        query = select(OfferRecord).filter_by(**filters)
        if not include_deleted:
            query = query.where(OfferRecord.deleted_at.is_(None))
        order_column = columns[order_by]
        query = query.order_by(order_column.desc() if descending else order_column.asc())

        async with self.session_factory() as session:
            result = await session.execute(query)
            return [_to_offer(row) for row in result.scalars()]

    async def create(self, offer: Offer) -> Offer:
        values = {f.name: getattr(offer, f.name) for f in fields(Offer)}
        values["source_type"] = SourceType(offer.source_type).value
        if offer.observed_at is not None:
            values["observed_at"] = to_naive_utc(offer.observed_at)
        async with self.session_factory() as session:
            session.add(OfferRecord(**values))
            await session.commit()
        return offer


class SqlHistoricalPriceRepository(_SqlRepository):
    def _filtered(
        self,
        query,
        inventory_item_id: str,
        start_date: Optional[datetime],
        end_date: Optional[datetime],
        supplier_id: Optional[str],
        source: Optional[PriceSource],
    ):
        query = query.where(HistoricalPriceRecord.inventory_item_id == inventory_item_id)
        if start_date is not None:
            query = query.where(HistoricalPriceRecord.observed_at >= to_naive_utc(start_date))
        if end_date is not None:
            query = query.where(HistoricalPriceRecord.observed_at <= to_naive_utc(end_date))
        if supplier_id:
            query = query.where(HistoricalPriceRecord.supplier_id == supplier_id)
        if source:
            query = query.where(HistoricalPriceRecord.source == PriceSource(source).value)
        return query

    @staticmethod
    def _to_record(price: HistoricalPrice) -> HistoricalPriceRecord:
        return HistoricalPriceRecord(
            id=price.id,
            inventory_item_id=price.inventory_item_id,
            supplier_id=price.supplier_id,
            price=price.price,
            currency=price.currency,
            unit=price.unit,
            quantity=price.quantity,
            source=PriceSource(price.source).value,
            price_metadata=dict(price.metadata) if price.metadata else None,
            observed_at=to_naive_utc(price.observed_at),
        )

    async def create(self, price: HistoricalPrice) -> HistoricalPrice:
        return (await self.create_many([price]))[0]

    async def create_many(self, prices: Sequence[HistoricalPrice]) -> list[HistoricalPrice]:
        stored = [p if p.id else replace(p, id=str(uuid.uuid4())) for p in prices]
        async with self.session_factory() as session:
            session.add_all([self._to_record(p) for p in stored])
            await session.commit()
        return stored

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
        query = self._filtered(
            select(HistoricalPriceRecord),
            inventory_item_id, start_date, end_date, supplier_id, source,
        )
        observed = HistoricalPriceRecord.observed_at
        query = query.order_by(observed.desc() if descending else observed.asc())
        if limit:
            query = query.limit(limit)

        async with self.session_factory() as session:
            result = await session.execute(query)
            return [_to_historical_price(row) for row in result.scalars()]

    async def get_price_statistics(
        self,
        inventory_item_id: str,
        *,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        supplier_id: Optional[str] = None,
        source: Optional[PriceSource] = None,
    ) -> Optional[PriceStatistics]:
        """Aggregate statistics for matching observations, or None if there are none."""
        price = HistoricalPriceRecord.price
        aggregates = self._filtered(
            select(func.min(price), func.max(price), func.avg(price), func.count()),
            inventory_item_id, start_date, end_date, supplier_id, source,
        )
        values = self._filtered(
            select(price), inventory_item_id, start_date, end_date, supplier_id, source,
        )

        async with self.session_factory() as session:
            min_price, max_price, avg_price, count = (await session.execute(aggregates)).one()
            if not count:
                return None
            prices = list((await session.execute(values)).scalars())

        std_dev = statistics.pstdev(prices, mu=avg_price)
        return PriceStatistics(
            min=min_price,
            max=max_price,
            average=avg_price,
            median=statistics.median(prices),
            standard_deviation=std_dev,
            volatility=std_dev / avg_price if avg_price > 0 else 0.0,
            count=count,
            period=TimePeriod.ALL.value,
        )

    async def get_best_historical_price(
        self,
        inventory_item_id: str,
        *,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        supplier_id: Optional[str] = None,
        source: Optional[PriceSource] = None,
    ) -> Optional[HistoricalPrice]:
        query = self._filtered(
            select(HistoricalPriceRecord),
            inventory_item_id, start_date, end_date, supplier_id, source,
        ).order_by(HistoricalPriceRecord.price.asc()).limit(1)

        async with self.session_factory() as session:
            row = (await session.execute(query)).scalars().first()
            return _to_historical_price(row) if row else None

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
        """Average price per day, ISO week or month, oldest bucket first."""
        if group_by not in TREND_GROUPINGS:
            raise ValueError(f"group_by must be one of {', '.join(TREND_GROUPINGS)}")

        prices = await self.get_historical_prices_for_item(
            inventory_item_id,
            start_date=start_date,
            end_date=end_date,
            supplier_id=supplier_id,
            source=source,
        )

        buckets: dict[str, list[float]] = {}
        for price in prices:
            buckets.setdefault(_bucket_label(price.observed_at, group_by), []).append(price.price)

        return [
            PriceTrendPoint(date=label, price=statistics.fmean(values), count=len(values))
            for label, values in sorted(buckets.items())
        ]

    async def cleanup_old_data(self, older_than_days: int) -> int:
        """Delete observations older than the cutoff; returns how many were removed."""
        cutoff = utcnow() - timedelta(days=older_than_days)
        async with self.session_factory() as session:
            result = await session.execute(
                delete(HistoricalPriceRecord).where(HistoricalPriceRecord.observed_at < cutoff)
            )
            await session.commit()
            deleted = result.rowcount
        logger.debug(f"Deleted {deleted} historical prices observed before {cutoff}")
        return deleted


class SqlRepositoryFactory:
    """Repository factory over an async session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.inventory_items = SqlInventoryItemRepository(session_factory)
        self.offers = SqlOfferRepository(session_factory)
        self.suppliers = SqlSupplierRepository(session_factory)
        self.historical_prices = SqlHistoricalPriceRepository(session_factory)

    def get_inventory_item_repository(self) -> SqlInventoryItemRepository:
        return self.inventory_items

    def get_offer_repository(self) -> SqlOfferRepository:
        return self.offers

    def get_supplier_repository(self) -> SqlSupplierRepository:
        return self.suppliers

    def get_historical_price_repository(self) -> SqlHistoricalPriceRepository:
        return self.historical_prices
