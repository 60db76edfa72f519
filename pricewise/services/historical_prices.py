"""Historical price service.

Records price observations and answers trend, statistics and alert
queries on top of the historical price repository.
"""

import asyncio
import logging
import statistics
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence, Union

from pricewise.compare.errors import InvalidDataError
from pricewise.compare.statistics import calculate_price_statistics
from pricewise.compare.trend_analysis import (
    TrendAnalysisOptions,
    analyze_price_trend,
    get_time_period_boundaries,
)
from pricewise.compare.types import PriceStatistics, PriceTrend, TimePeriod
from pricewise.config import settings
from pricewise.domain import HistoricalPrice, InventoryItem, Offer, PriceSource
from pricewise.metrics import record_cleanup, record_prices_recorded
from pricewise.repositories.base import HistoricalPriceRepository, RepositoryFactory
from pricewise.utils.timestamps import utcnow

logger = logging.getLogger(__name__)

AGGREGATED_SUPPLIER_KEY = "aggregated"


@dataclass
class PricePoint:
    """A raw price input for aggregation."""

    price: float
    observed_at: datetime
    currency: str = "USD"


@dataclass
class PriceAlert:
    """A significant change between two consecutive observations."""

    type: str                   # "increase" or "decrease"
    percentage: float
    current_price: float
    previous_price: float
    observed_at: datetime
    supplier_id: Optional[str] = None


@dataclass
class PriceHistorySummary:
    """Headline figures for an item's recent price history."""

    current_price: Optional[float]
    best_price: Optional[float]
    average_price: Optional[float]
    price_range: tuple[float, float]
    trend: Optional[PriceTrend]
    supplier_count: int
    data_point_count: int
    last_updated: datetime
    supplier_ids: list[str] = field(default_factory=list)


class HistoricalPriceService:
    """Time-series queries over historical price observations."""

    def __init__(self, repository_factory: RepositoryFactory):
        self.repository_factory = repository_factory

    @property
    def repository(self) -> HistoricalPriceRepository:
        return self.repository_factory.get_historical_price_repository()

    # =========================================================================
    # Recording
    # =========================================================================

    async def record_price(self, price: HistoricalPrice) -> HistoricalPrice:
        recorded = await self.repository.create(price)
        record_prices_recorded(PriceSource(price.source).value)
        return recorded

    async def record_prices(self, prices: Sequence[HistoricalPrice]) -> list[HistoricalPrice]:
        recorded = await self.repository.create_many(prices)
        for source, count in Counter(PriceSource(p.source).value for p in prices).items():
            record_prices_recorded(source, count)
        return recorded

    async def record_price_from_offer(
        self,
        offer: Offer,
        inventory_item: InventoryItem,
        *,
        include_shipping: bool = True,
        include_tax: bool = True,
        confidence: Optional[float] = None,
        notes: Optional[str] = None,
    ) -> HistoricalPrice:
        """Record an offer's effective price per canonical unit as an observation."""
        metadata = {
            "original_offer_id": offer.id,
            "confidence": confidence if confidence is not None else settings.offer_price_confidence,
            "includes_shipping": include_shipping,
            "includes_tax": include_tax,
            "quality_rating": offer.quality_rating,
        }
        if notes:
            metadata["notes"] = notes

        return await self.record_price(HistoricalPrice(
            inventory_item_id=offer.inventory_item_id,
            supplier_id=offer.supplier_id,
            price=offer.effective_price_per_canonical,
            currency=offer.currency,
            unit=inventory_item.canonical_unit,
            quantity=offer.amount_canonical,
            observed_at=offer.observed_at or utcnow(),
            source=PriceSource.OFFER,
            metadata=metadata,
        ))

    async def record_aggregated_price(
        self,
        inventory_item_id: str,
        prices: Sequence[Union[PricePoint, HistoricalPrice]],
        unit: str,
        quantity: float,
        *,
        confidence: Optional[float] = None,
        notes: Optional[str] = None,
    ) -> HistoricalPrice:
        """
        Record the mean of several prices as one supplier-less observation.

        Raises:
            InvalidDataError: If ``prices`` is empty
        """
        if not prices:
            raise InvalidDataError("Cannot create aggregated price from empty price array")

        metadata = {
            "confidence": confidence if confidence is not None else settings.aggregated_price_confidence,
            "notes": notes or f"Aggregated from {len(prices)} sources",
            "tags": ["aggregated"],
        }

        return await self.record_price(HistoricalPrice(
            inventory_item_id=inventory_item_id,
            supplier_id=None,
            price=statistics.fmean(p.price for p in prices),
            currency=prices[0].currency,
            unit=unit,
            quantity=quantity,
            observed_at=max(p.observed_at for p in prices),
            source=PriceSource.AGGREGATED,
            metadata=metadata,
        ))

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_historical_prices(
        self,
        inventory_item_id: str,
        *,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        supplier_id: Optional[str] = None,
        sources: Optional[Sequence[PriceSource]] = None,
        limit: Optional[int] = None,
        descending: bool = False,
    ) -> list[HistoricalPrice]:
        sources = [PriceSource(s) for s in sources or []]
        prices = await self.repository.get_historical_prices_for_item(
            inventory_item_id,
            start_date=start_date,
            end_date=end_date,
            supplier_id=supplier_id,
            source=sources[0] if len(sources) == 1 else None,
            limit=limit if len(sources) <= 1 else None,
            descending=descending,
        )
        if len(sources) > 1:
            prices = [p for p in prices if PriceSource(p.source) in sources]
            if limit:
                prices = prices[:limit]
        return prices

    async def get_price_trend(
        self,
        inventory_item_id: str,
        options: TrendAnalysisOptions,
    ) -> Optional[PriceTrend]:
        """Trend over offer-sourced observations within the options' period."""
        start, end = get_time_period_boundaries(options.period)
        prices = await self.repository.get_historical_prices_for_item(
            inventory_item_id,
            start_date=start,
            end_date=end,
            supplier_id=options.supplier_id,
            source=PriceSource.OFFER,
        )
        return analyze_price_trend(prices, options, now=end)

    async def get_price_statistics(
        self,
        inventory_item_id: str,
        period: Union[TimePeriod, str],
        supplier_id: Optional[str] = None,
    ) -> Optional[PriceStatistics]:
        start, end = get_time_period_boundaries(period)
        prices = await self.repository.get_historical_prices_for_item(
            inventory_item_id,
            start_date=start,
            end_date=end,
            supplier_id=supplier_id,
        )
        if not prices:
            return None
        return calculate_price_statistics(prices, period)

    async def get_best_historical_price(
        self,
        inventory_item_id: str,
        period: Optional[Union[TimePeriod, str]] = None,
        supplier_id: Optional[str] = None,
    ) -> Optional[HistoricalPrice]:
        start = end = None
        if period is not None:
            start, end = get_time_period_boundaries(period)
        return await self.repository.get_best_historical_price(
            inventory_item_id,
            start_date=start,
            end_date=end,
            supplier_id=supplier_id,
        )

    async def get_supplier_price_trends(
        self,
        inventory_item_id: str,
        period: Union[TimePeriod, str],
    ) -> dict[str, PriceTrend]:
        """Trend per supplier; supplier-less observations are grouped under "aggregated"."""
        start, end = get_time_period_boundaries(period)
        prices = await self.repository.get_historical_prices_for_item(
            inventory_item_id, start_date=start, end_date=end
        )

        by_supplier: dict[str, list[HistoricalPrice]] = {}
        for price in prices:
            by_supplier.setdefault(price.supplier_id or AGGREGATED_SUPPLIER_KEY, []).append(price)

        trends = {}
        for supplier_id, supplier_prices in by_supplier.items():
            trend = analyze_price_trend(
                supplier_prices,
                TrendAnalysisOptions(
                    period=period,
                    supplier_id=None if supplier_id == AGGREGATED_SUPPLIER_KEY else supplier_id,
                ),
                now=end,
            )
            if trend:
                trends[supplier_id] = trend
        return trends

    async def get_price_alerts(
        self,
        inventory_item_id: str,
        *,
        threshold: Optional[float] = None,
        period: Optional[Union[TimePeriod, str]] = None,
        supplier_id: Optional[str] = None,
    ) -> list[PriceAlert]:
        """
        Find consecutive observations whose price changed by at least
        ``threshold`` percent.

        Args:
            inventory_item_id: Item to inspect
            threshold: Minimum absolute change in percent (default from settings)
            period: Look-back window (default from settings)
            supplier_id: Restrict to one supplier

        Returns:
            Alerts in chronological order
        """
        threshold = threshold if threshold is not None else settings.price_alert_threshold_percent
        start, end = get_time_period_boundaries(period or settings.price_alert_period)

        prices = await self.get_historical_prices(
            inventory_item_id, start_date=start, end_date=end, supplier_id=supplier_id
        )
        if len(prices) < 2:
            return []

        ordered = sorted(prices, key=lambda p: p.observed_at)
        alerts = []
        for previous, current in zip(ordered, ordered[1:]):
            if previous.price == 0:
                continue
            change = abs((current.price - previous.price) / previous.price) * 100
            if change >= threshold:
                alerts.append(PriceAlert(
                    type="increase" if current.price > previous.price else "decrease",
                    percentage=change,
                    current_price=current.price,
                    previous_price=previous.price,
                    observed_at=current.observed_at,
                    supplier_id=current.supplier_id,
                ))

        if alerts:
            logger.info(f"{len(alerts)} price alerts for item {inventory_item_id}")
        return alerts

    async def get_price_history_summary(
        self,
        inventory_item_id: str,
        period: Optional[Union[TimePeriod, str]] = None,
    ) -> PriceHistorySummary:
        period = period or settings.default_trend_period
        start, end = get_time_period_boundaries(period)
        prices, trend, stats = await asyncio.gather(
            self.get_historical_prices(inventory_item_id, start_date=start, end_date=end),
            self.get_price_trend(inventory_item_id, TrendAnalysisOptions(period=period)),
            self.get_price_statistics(inventory_item_id, period),
        )

        supplier_ids = sorted({p.supplier_id for p in prices if p.supplier_id})
        latest = max(prices, key=lambda p: p.observed_at) if prices else None

        return PriceHistorySummary(
            current_price=latest.price if latest else None,
            best_price=stats.min if stats else None,
            average_price=stats.average if stats else None,
            price_range=(stats.min, stats.max) if stats else (0.0, 0.0),
            trend=trend,
            supplier_count=len(supplier_ids),
            data_point_count=len(prices),
            last_updated=latest.observed_at if latest else utcnow(),
            supplier_ids=supplier_ids,
        )

    # =========================================================================
    # Retention
    # =========================================================================

    async def cleanup_old_data(self, older_than_days: Optional[int] = None) -> int:
        """Delete observations older than the retention window; returns the count removed."""
        days = older_than_days if older_than_days is not None else settings.historical_retention_days
        deleted = await self.repository.cleanup_old_data(days)
        record_cleanup(deleted)
        logger.info(f"Historical price cleanup removed {deleted} observations older than {days} days")
        return deleted
