"""
Integration tests for the SQL repositories and the historical price service.

Runs against a throwaway SQLite database per test.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from pricewise.compare.engine import ComparisonEngine
from pricewise.compare.errors import InvalidDataError
from pricewise.compare.trend_analysis import TrendAnalysisOptions
from pricewise.compare.types import ComparisonConfig, TimePeriod, TrendDirection
from pricewise.db.session import init_db
from pricewise.domain import HistoricalPrice, PriceSource
from pricewise.repositories.sql import SqlRepositoryFactory
from pricewise.services.historical_prices import HistoricalPriceService, PricePoint
from pricewise.utils.timestamps import utcnow


@pytest.fixture
async def factory(tmp_path, item, suppliers):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'pricewise.db'}", echo=False)
    await init_db(engine)

    factory = SqlRepositoryFactory(async_sessionmaker(engine, expire_on_commit=False))
    await factory.inventory_items.create(item)
    for supplier in suppliers:
        await factory.suppliers.create(supplier)

    yield factory

    await engine.dispose()


@pytest.fixture
def service(factory):
    return HistoricalPriceService(factory)


def observation(item, price, days_ago, supplier_id="sup-a", source=PriceSource.OFFER):
    return HistoricalPrice(
        inventory_item_id=item.id,
        price=price,
        observed_at=utcnow() - timedelta(days=days_ago, minutes=1),
        supplier_id=supplier_id,
        source=source,
    )


class TestSqlRepositories:
    """Tests for the SQLAlchemy repository implementations."""

    @pytest.mark.asyncio
    async def test_offers_round_trip(self, factory, item, make_offer):
        offer = make_offer("offer-1", 10.0, shipping_cost=1.5, quality_rating=4)
        await factory.offers.create(offer)

        found = await factory.offers.find_where({"inventory_item_id": item.id})

        assert found == [offer]

    @pytest.mark.asyncio
    async def test_soft_deleted_rows_are_hidden(self, factory, item, make_offer):
        await factory.offers.create(make_offer("offer-live", 10.0))
        await factory.offers.create(make_offer("offer-gone", 9.0, deleted_at=utcnow()))

        live = await factory.offers.find_where({"inventory_item_id": item.id})
        everything = await factory.offers.find_where({"inventory_item_id": item.id}, include_deleted=True)

        assert [o.id for o in live] == ["offer-live"]
        assert {o.id for o in everything} == {"offer-live", "offer-gone"}
        assert await factory.inventory_items.find_by_id("nope") is None
        assert [s.id for s in await factory.suppliers.find_all()] == ["sup-b", "sup-a"]

    @pytest.mark.asyncio
    async def test_unknown_filter_column_is_rejected(self, factory):
        with pytest.raises(ValueError, match="Unknown offer column"):
            await factory.offers.find_where({"colour": "red"})

    @pytest.mark.asyncio
    async def test_price_statistics(self, factory, item):
        await factory.historical_prices.create_many([
            observation(item, 10.0, 3), observation(item, 20.0, 2), observation(item, 30.0, 1),
        ])

        stats = await factory.historical_prices.get_price_statistics(item.id)
        missing = await factory.historical_prices.get_price_statistics(item.id, supplier_id="sup-b")

        assert stats.count == 3
        assert stats.average == pytest.approx(20.0)
        assert stats.median == pytest.approx(20.0)
        assert stats.min == 10.0 and stats.max == 30.0
        assert stats.standard_deviation == pytest.approx((200 / 3) ** 0.5)
        assert missing is None

    @pytest.mark.asyncio
    async def test_best_price_and_ordering(self, factory, item):
        await factory.historical_prices.create_many([
            observation(item, 12.0, 3), observation(item, 9.0, 2), observation(item, 11.0, 1),
        ])

        best = await factory.historical_prices.get_best_historical_price(item.id)
        newest_first = await factory.historical_prices.get_historical_prices_for_item(
            item.id, descending=True, limit=2
        )

        assert best.price == 9.0
        assert best.id
        assert [p.price for p in newest_first] == [11.0, 9.0]

    @pytest.mark.asyncio
    async def test_trend_buckets(self, factory, item):
        base = datetime(2024, 1, 30, 12)
        await factory.historical_prices.create_many([
            HistoricalPrice(item.id, 10.0, base),
            HistoricalPrice(item.id, 20.0, base + timedelta(hours=1)),
            HistoricalPrice(item.id, 30.0, base + timedelta(days=3)),
        ])

        daily = await factory.historical_prices.get_price_trend(item.id)
        monthly = await factory.historical_prices.get_price_trend(item.id, group_by="month")
        weekly = await factory.historical_prices.get_price_trend(item.id, group_by="week")

        assert [(p.date, p.price, p.count) for p in daily] == [
            ("2024-01-30", 15.0, 2),
            ("2024-02-02", 30.0, 1),
        ]
        assert [(p.date, p.count) for p in monthly] == [("2024-01", 2), ("2024-02", 1)]
        assert [p.date for p in weekly] == ["2024-W05"]

    @pytest.mark.asyncio
    async def test_unknown_grouping(self, factory, item):
        with pytest.raises(ValueError):
            await factory.historical_prices.get_price_trend(item.id, group_by="decade")


class TestHistoricalPriceService:
    """Tests for recording and querying historical prices."""

    @pytest.mark.asyncio
    async def test_record_price_from_offer(self, service, item, make_offer):
        offer = make_offer("offer-1", 10.0, shipping_cost=2.0)

        recorded = await service.record_price_from_offer(offer, item)
        stored = await service.get_historical_prices(item.id)

        assert stored == [recorded]
        assert recorded.price == pytest.approx(0.012)
        assert recorded.unit == "g"
        assert recorded.quantity == 1000
        assert recorded.source == PriceSource.OFFER
        assert recorded.metadata["original_offer_id"] == "offer-1"
        assert recorded.confidence == 0.8

    @pytest.mark.asyncio
    async def test_record_aggregated_price(self, service, item):
        now = utcnow()
        points = [PricePoint(10.0, now - timedelta(days=1)), PricePoint(14.0, now - timedelta(hours=2))]

        recorded = await service.record_aggregated_price(item.id, points, "g", 1000)

        assert recorded.price == pytest.approx(12.0)
        assert recorded.supplier_id is None
        assert recorded.source == PriceSource.AGGREGATED
        assert recorded.observed_at == points[1].observed_at
        assert recorded.confidence == 0.6
        assert recorded.metadata["notes"] == "Aggregated from 2 sources"

    @pytest.mark.asyncio
    async def test_aggregating_nothing_raises(self, service, item):
        with pytest.raises(InvalidDataError):
            await service.record_aggregated_price(item.id, [], "g", 1000)

    @pytest.mark.asyncio
    async def test_source_filtering(self, service, item):
        await service.record_prices([
            observation(item, 10.0, 3, source=PriceSource.MANUAL),
            observation(item, 11.0, 2, source=PriceSource.SCRAPED),
            observation(item, 12.0, 1, source=PriceSource.OFFER),
        ])

        manual = await service.get_historical_prices(item.id, sources=[PriceSource.MANUAL])
        two = await service.get_historical_prices(item.id, sources=["manual", "offer"])

        assert [p.price for p in manual] == [10.0]
        assert [p.price for p in two] == [10.0, 12.0]

    @pytest.mark.asyncio
    async def test_price_trend_uses_offer_observations(self, service, item):
        await service.record_prices([
            observation(item, 10.0, 4), observation(item, 11.0, 3),
            observation(item, 12.0, 2), observation(item, 13.0, 1),
            observation(item, 50.0, 1, source=PriceSource.MANUAL),
        ])

        trend = await service.get_price_trend(item.id, TrendAnalysisOptions(period=TimePeriod.SEVEN_DAYS))

        assert trend.direction == TrendDirection.UP
        assert trend.data_point_count == 4
        assert trend.end_price == 13.0

    @pytest.mark.asyncio
    async def test_statistics_and_summary(self, service, item):
        await service.record_prices([
            observation(item, 10.0, 3), observation(item, 12.0, 2, supplier_id="sup-b"),
            observation(item, 11.0, 1),
        ])

        stats = await service.get_price_statistics(item.id, "30d")
        summary = await service.get_price_history_summary(item.id)
        nothing = await service.get_price_statistics("item-other", "30d")

        assert stats.count == 3
        assert stats.period == "30d"
        assert nothing is None
        assert summary.current_price == 11.0
        assert summary.best_price == 10.0
        assert summary.price_range == (10.0, 12.0)
        assert summary.supplier_ids == ["sup-a", "sup-b"]
        assert summary.data_point_count == 3

    @pytest.mark.asyncio
    async def test_supplier_trends(self, service, item):
        await service.record_prices([
            observation(item, 10.0, 3), observation(item, 12.0, 1),
            observation(item, 8.0, 3, supplier_id=None, source=PriceSource.AGGREGATED),
            observation(item, 8.0, 1, supplier_id=None, source=PriceSource.AGGREGATED),
            observation(item, 5.0, 2, supplier_id="sup-b"),
        ])

        trends = await service.get_supplier_price_trends(item.id, "30d")

        assert set(trends) == {"sup-a", "aggregated"}
        assert trends["sup-a"].direction == TrendDirection.UP
        assert trends["aggregated"].direction == TrendDirection.STABLE

    @pytest.mark.asyncio
    async def test_price_alerts(self, service, item):
        await service.record_prices([
            observation(item, 10.0, 3), observation(item, 12.0, 2), observation(item, 11.5, 1),
        ])

        alerts = await service.get_price_alerts(item.id)
        sensitive = await service.get_price_alerts(item.id, threshold=4)

        assert len(alerts) == 1
        assert alerts[0].type == "increase"
        assert alerts[0].percentage == pytest.approx(20.0)
        assert [a.type for a in sensitive] == ["increase", "decrease"]

    @pytest.mark.asyncio
    async def test_cleanup_old_data(self, service, item):
        await service.record_prices([observation(item, 10.0, 800), observation(item, 11.0, 1)])

        deleted = await service.cleanup_old_data()
        remaining = await service.get_historical_prices(item.id)

        assert deleted == 1
        assert [p.price for p in remaining] == [11.0]


@pytest.mark.asyncio
async def test_engine_against_sql_storage(factory, item, make_offer):
    await factory.offers.create(make_offer("offer-dear", 12.0))
    await factory.offers.create(make_offer("offer-cheap", 8.0, supplier_id="sup-b"))
    engine = ComparisonEngine(factory)

    results = await engine.compare_offers(item.id, ComparisonConfig("pricePerCanonical"))

    assert [r.offer.id for r in results.results] == ["offer-cheap", "offer-dear"]
    assert results.metadata.total_offers == 2
