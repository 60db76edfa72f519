"""Tests for the comparison engine."""

import asyncio
from dataclasses import FrozenInstanceError, replace

import pytest

from conftest import InMemoryRepositories
from pricewise.compare.cache import ComparisonCache
from pricewise.compare.engine import ComparisonEngine
from pricewise.compare.errors import (
    ComparisonError,
    InvalidConfigError,
    NotFoundError,
    StrategyNotFoundError,
)
from pricewise.compare.types import ComparisonConfig, GlobalOptions, SecondaryStrategy
from pricewise.utils.timestamps import utcnow


@pytest.fixture
def engine(repositories):
    return ComparisonEngine(repositories, cache=ComparisonCache(ttl_seconds=60, max_size=10))


def config(strategy="pricePerCanonical", **global_options) -> ComparisonConfig:
    return ComparisonConfig(primary_strategy=strategy, global_options=GlobalOptions(**global_options))


@pytest.mark.asyncio
async def test_cheapest_offer_ranks_first(engine, item):
    results = await engine.compare_offers(item.id, config())

    assert [r.offer.id for r in results.results] == ["offer-cheap", "offer-dear"]
    assert results.best_offer.offer.id == "offer-cheap"
    assert results.best_offer.score == pytest.approx(0.008)
    assert results.metadata.total_offers == 2
    assert results.metadata.excluded_offers == 0
    assert results.metadata.strategy_used == "pricePerCanonical"
    assert results.metadata.cache_hit is False
    assert results.inventory_item == item


@pytest.mark.asyncio
async def test_descending_sort(engine, item):
    results = await engine.compare_offers(item.id, config(sort_direction="desc"))

    assert [r.offer.id for r in results.results] == ["offer-dear", "offer-cheap"]


@pytest.mark.asyncio
async def test_results_carry_explanation_and_confidence(engine, item):
    results = await engine.compare_offers(item.id, config())

    for result in results.results:
        assert result.metadata.explanation
        assert 0 <= result.metadata.confidence <= 1


@pytest.mark.asyncio
async def test_second_call_is_served_from_cache(engine, repositories, item):
    first = await engine.compare_offers(item.id, config())
    second = await engine.compare_offers(item.id, config())

    assert second.metadata.cache_hit is True
    assert first.metadata.cache_hit is False
    assert [r.offer.id for r in second.results] == [r.offer.id for r in first.results]
    assert repositories.calls["find_by_id"] == 1
    assert repositories.calls["find_where"] == 1


@pytest.mark.asyncio
async def test_different_config_misses_cache(engine, repositories, item):
    await engine.compare_offers(item.id, config())
    await engine.compare_offers(item.id, config(max_results=1))

    assert repositories.calls["find_by_id"] == 2


@pytest.mark.asyncio
async def test_invalidate_cache_forces_reload(engine, repositories, item):
    await engine.compare_offers(item.id, config())
    removed = await engine.invalidate_cache(item.id)
    results = await engine.compare_offers(item.id, config())

    assert removed == 1
    assert results.metadata.cache_hit is False
    assert repositories.calls["find_by_id"] == 2


@pytest.mark.asyncio
async def test_editing_returned_results_does_not_change_cache(engine, repositories, item):
    request = config()
    first = await engine.compare_offers(item.id, request)
    first.results.clear()
    request.global_options.sort_direction = "desc"

    second = await engine.compare_offers(item.id, config())

    assert second.metadata.cache_hit is True
    assert [r.offer.id for r in second.results] == ["offer-cheap", "offer-dear"]
    assert second.best_offer == second.results[0]
    assert second.config.global_options.sort_direction == "asc"
    assert repositories.calls["find_by_id"] == 1


@pytest.mark.asyncio
async def test_concurrent_comparisons_keep_configs_apart(engine, item):
    requests = [config(sort_direction=d) for d in ("asc", "desc") * 4]

    outcomes = await asyncio.gather(*(engine.compare_offers(item.id, r) for r in requests))

    for request, results in zip(requests, outcomes):
        direction = request.global_options.sort_direction
        expected = ["offer-cheap", "offer-dear"] if direction == "asc" else ["offer-dear", "offer-cheap"]
        assert results.config.global_options.sort_direction == direction
        assert [r.offer.id for r in results.results] == expected
        assert results.best_offer == results.results[0]
    assert len(engine.cache) == 2


@pytest.mark.asyncio
async def test_unknown_strategy_is_rejected_before_loading(engine, repositories, item):
    with pytest.raises(InvalidConfigError) as exc_info:
        await engine.compare_offers(item.id, config("cheapestEver"))

    assert "cheapestEver" in str(exc_info.value)
    assert exc_info.value.code == "INVALID_CONFIG"
    assert exc_info.value.field == "primary_strategy"
    assert repositories.calls["find_by_id"] == 0


@pytest.mark.asyncio
async def test_missing_config_without_default_is_rejected(engine, item):
    with pytest.raises(InvalidConfigError, match="Comparison config is required"):
        await engine.compare_offers(item.id)


@pytest.mark.asyncio
async def test_default_config_is_used_when_none_given(repositories, item):
    engine = ComparisonEngine(repositories, default_config=config("totalPrice"))

    results = await engine.compare_offers(item.id)

    assert results.metadata.strategy_used == "totalPrice"
    assert results.best_offer.score == pytest.approx(8.0)


@pytest.mark.asyncio
async def test_unknown_item_raises_not_found(engine):
    with pytest.raises(NotFoundError) as exc_info:
        await engine.compare_offers("item-missing", config())

    assert "item-missing" in str(exc_info.value)
    assert exc_info.value.code == "ITEM_NOT_FOUND"


@pytest.mark.asyncio
async def test_item_without_offers_returns_empty_results(item, suppliers):
    repositories = InMemoryRepositories(items=[item], suppliers=suppliers)
    engine = ComparisonEngine(repositories)

    results = await engine.compare_offers(item.id, config())

    assert results.results == []
    assert results.best_offer is None
    assert results.metadata.total_offers == 0
    assert results.metadata.excluded_offers == 0
    assert repositories.calls["find_all"] == 0


@pytest.mark.asyncio
async def test_repository_failure_is_wrapped(engine, repositories, item):
    repositories.fail_offers_with = RuntimeError("connection reset")

    with pytest.raises(ComparisonError) as exc_info:
        await engine.compare_offers(item.id, config())

    assert exc_info.value.code == "COMPARISON_ERROR"
    assert isinstance(exc_info.value.original_error, RuntimeError)
    assert item.id in str(exc_info.value)


@pytest.mark.asyncio
async def test_failed_comparison_is_not_cached(engine, repositories, item):
    repositories.fail_offers_with = RuntimeError("connection reset")
    with pytest.raises(ComparisonError):
        await engine.compare_offers(item.id, config())

    repositories.fail_offers_with = None
    results = await engine.compare_offers(item.id, config())

    assert results.metadata.cache_hit is False
    assert len(results.results) == 2


@pytest.mark.asyncio
async def test_incomplete_offers_can_be_excluded(repositories, make_offer, item):
    broken = replace(make_offer("offer-broken", 5.0), total_price=0.0)
    repositories.offers.append(broken)
    engine = ComparisonEngine(repositories)

    results = await engine.compare_offers(item.id, config(include_incomplete=False))

    assert "offer-broken" not in [r.offer.id for r in results.results]
    assert results.metadata.total_offers == 3
    assert results.metadata.excluded_offers == 1


@pytest.mark.asyncio
async def test_deleted_offers_are_skipped_unless_requested(repositories, make_offer, item):
    repositories.offers.append(make_offer("offer-gone", 1.0, deleted_at=utcnow()))
    engine = ComparisonEngine(repositories)

    default = await engine.compare_offers(item.id, config())
    with_deleted = await engine.compare_offers(item.id, config(include_deleted=True))

    assert "offer-gone" not in [r.offer.id for r in default.results]
    assert with_deleted.best_offer.offer.id == "offer-gone"


@pytest.mark.asyncio
async def test_max_results_truncates_and_counts_excluded(engine, item):
    results = await engine.compare_offers(item.id, config(max_results=1))

    assert [r.offer.id for r in results.results] == ["offer-cheap"]
    assert results.metadata.excluded_offers == 1


@pytest.mark.asyncio
async def test_min_confidence_filters_results(repositories, make_offer, item):
    repositories.offers = [
        make_offer("offer-rated", 10.0, quality_rating=5, supplier_url="https://grocer.example/rice"),
        make_offer("offer-bare", 9.0),
    ]
    engine = ComparisonEngine(repositories)

    results = await engine.compare_offers(item.id, config(min_confidence=0.9))

    assert [r.offer.id for r in results.results] == ["offer-rated"]
    assert results.metadata.excluded_offers == 1


@pytest.mark.asyncio
async def test_secondary_strategies_produce_composite_scores(repositories, make_offer, item):
    # Cheaper per gram but more expensive in total
    repositories.offers = [
        make_offer("offer-bulk", 30.0, amount=5),
        make_offer("offer-small", 8.0, amount=1),
    ]
    engine = ComparisonEngine(repositories)
    cfg = ComparisonConfig(
        primary_strategy="pricePerCanonical",
        secondary_strategies=[SecondaryStrategy("totalPrice", 0.2)],
    )

    results = await engine.compare_offers(item.id, cfg)

    best = results.best_offer
    assert best.offer.id == "offer-bulk"
    breakdown = best.metadata.score_breakdown
    assert breakdown["pricePerCanonical_score"] == pytest.approx(0.006)
    assert breakdown["totalPrice_score"] == pytest.approx(30.0)
    assert breakdown["composite_score"] == pytest.approx(0.2)
    assert best.score == pytest.approx(0.2)
    assert "bulk-quantity" in best.metadata.flags


@pytest.mark.asyncio
async def test_compare_multiple_items_isolates_failures(engine, item):
    results = await engine.compare_multiple_items([item.id, "item-missing"], config())

    assert set(results) == {item.id, "item-missing"}
    assert results[item.id].best_offer.offer.id == "offer-cheap"
    assert not results[item.id].failed
    assert results["item-missing"].failed
    assert "item-missing" in results["item-missing"].metadata.error
    assert results["item-missing"].results == []


@pytest.mark.asyncio
async def test_compare_multiple_items_rejects_invalid_config(engine, repositories, item):
    with pytest.raises(InvalidConfigError):
        await engine.compare_multiple_items([item.id], config(max_results=0))

    assert repositories.calls["find_by_id"] == 0


def test_validate_config_reports_every_error(engine):
    cfg = ComparisonConfig(
        primary_strategy="pricePerCanonical",
        strategy_options={"include_tax": "yes"},
        secondary_strategies=[SecondaryStrategy("nope", 1.5)],
        global_options=GlobalOptions(max_results=0, min_confidence=2, sort_direction="up"),
    )

    validation = engine.validate_config(cfg)

    assert not validation.is_valid
    for fragment in (
        "Secondary strategy 'nope' at index 0 not found",
        "Secondary strategy weight at index 0 must be between 0 and 1",
        "max_results must be at least 1",
        "min_confidence must be between 0 and 1",
        "sort_direction must be 'asc' or 'desc'",
        "include_tax must be a boolean",
    ):
        assert fragment in validation.error


def test_validate_config_warns_on_heavy_secondary_weights(engine):
    cfg = ComparisonConfig(
        primary_strategy="pricePerCanonical",
        secondary_strategies=[SecondaryStrategy("totalPrice", 0.6), SecondaryStrategy("pricePerUnit", 0.6)],
    )

    validation = engine.validate_config(cfg)

    assert validation.is_valid
    assert "Total weight of secondary strategies exceeds 1.0" in validation.warnings


def test_available_strategies(engine):
    strategies = {s.id: s for s in engine.get_available_strategies()}

    assert set(strategies) == {
        "pricePerCanonical",
        "totalPrice",
        "pricePerUnit",
        "qualityAdjustedPrice",
        "historicalPrice",
    }
    assert strategies["pricePerCanonical"].default_options["use_effective_price"] is True


def test_default_config_uses_strategy_defaults(engine):
    cfg = engine.get_default_config("qualityAdjustedPrice")

    assert cfg.primary_strategy == "qualityAdjustedPrice"
    assert cfg.strategy_options["quality_adjustment_factor"] == 0.1
    assert cfg.global_options.max_results == 50
    assert cfg.global_options.min_confidence == 0.5
    assert engine.validate_config(cfg).is_valid


def test_default_config_for_unknown_strategy(engine):
    with pytest.raises(StrategyNotFoundError) as exc_info:
        engine.get_default_config("cheapestEver")

    assert exc_info.value.code == "STRATEGY_NOT_FOUND"
    assert "cheapestEver" in str(exc_info.value)


def test_offers_are_frozen(make_offer):
    offer = make_offer("offer-x", 1.0)

    with pytest.raises(FrozenInstanceError):
        offer.total_price = 2.0  # type: ignore[misc]
