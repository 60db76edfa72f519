"""Tests for engine factories and presets."""

import pytest

from pricewise.compare.factory import (
    ComparisonEnginePresets,
    create_comparison_engine,
    create_comparison_engine_with_defaults,
)
from pricewise.compare.types import ComparisonConfig, SecondaryStrategy


def test_plain_engine_has_no_default_config(repositories):
    engine = create_comparison_engine(repositories)

    assert engine.default_config is None
    assert len(engine.get_available_strategies()) == 5


def test_defaults_are_merged_over_strategy_defaults(repositories):
    engine = create_comparison_engine_with_defaults(
        repositories,
        ComparisonConfig("totalPrice", strategy_options={"include_shipping": False}),
    )

    assert engine.default_config.primary_strategy == "totalPrice"
    assert engine.default_config.strategy_options == {"include_shipping": False, "include_tax": True}


def test_presets(repositories):
    quality = ComparisonEnginePresets.for_quality_comparison(repositories).default_config
    bulk = ComparisonEnginePresets.for_bulk_purchasing(repositories).default_config
    recent = ComparisonEnginePresets.for_recent_prices(repositories).default_config
    price = ComparisonEnginePresets.for_price_comparison(repositories).default_config

    assert price.primary_strategy == "pricePerCanonical"
    assert quality.strategy_options["quality_adjustment_factor"] == 0.3
    assert bulk.secondary_strategies == [SecondaryStrategy("totalPrice", 0.2)]
    assert bulk.global_options.include_incomplete is False
    assert bulk.global_options.max_results == 50
    assert recent.primary_strategy == "historicalPrice"
    assert recent.strategy_options["historical_period"] == "7d"


@pytest.mark.asyncio
async def test_preset_engine_compares_without_explicit_config(repositories, item):
    engine = ComparisonEnginePresets.for_price_comparison(repositories)

    results = await engine.compare_offers(item.id)

    assert results.best_offer.offer.id == "offer-cheap"
