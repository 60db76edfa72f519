"""Factory functions and presets for comparison engines."""

import logging
from typing import Optional, Union

from pricewise.compare.cache import ComparisonCache
from pricewise.compare.engine import ComparisonEngine
from pricewise.compare.types import ComparisonConfig, SecondaryStrategy, TimePeriod
from pricewise.compare.utils import merge_comparison_configs
from pricewise.repositories.base import RepositoryFactory


def create_comparison_engine(
    repository_factory: RepositoryFactory,
    *,
    cache: Optional[ComparisonCache] = None,
    logger: Optional[logging.Logger] = None,
) -> ComparisonEngine:
    return ComparisonEngine(repository_factory, cache=cache, logger=logger)


def create_comparison_engine_with_defaults(
    repository_factory: RepositoryFactory,
    default_config: Optional[Union[ComparisonConfig, dict]] = None,
    *,
    cache: Optional[ComparisonCache] = None,
    logger: Optional[logging.Logger] = None,
) -> ComparisonEngine:
    """
    Create an engine whose compare calls fall back to a default config.

    ``default_config`` is merged over the defaults of its primary strategy
    (``pricePerCanonical`` when it names none).
    """
    engine = create_comparison_engine(repository_factory, cache=cache, logger=logger)

    overrides = default_config or {}
    if isinstance(overrides, ComparisonConfig):
        overrides = overrides.to_dict()

    base = engine.get_default_config(overrides.get("primary_strategy") or "pricePerCanonical")
    engine.default_config = merge_comparison_configs(base, overrides)
    return engine


class ComparisonEnginePresets:
    """Engines pre-configured for common shopping goals."""

    @staticmethod
    def for_price_comparison(repository_factory: RepositoryFactory) -> ComparisonEngine:
        return create_comparison_engine_with_defaults(
            repository_factory, {"primary_strategy": "pricePerCanonical"}
        )

    @staticmethod
    def for_quality_comparison(repository_factory: RepositoryFactory) -> ComparisonEngine:
        return create_comparison_engine_with_defaults(
            repository_factory,
            {
                "primary_strategy": "qualityAdjustedPrice",
                "strategy_options": {"quality_adjustment_factor": 0.3},
            },
        )

    @staticmethod
    def for_bulk_purchasing(repository_factory: RepositoryFactory) -> ComparisonEngine:
        return create_comparison_engine_with_defaults(
            repository_factory,
            {
                "primary_strategy": "pricePerCanonical",
                "secondary_strategies": [SecondaryStrategy("totalPrice", 0.2)],
                "global_options": {"include_incomplete": False},
            },
        )

    @staticmethod
    def for_recent_prices(repository_factory: RepositoryFactory) -> ComparisonEngine:
        return create_comparison_engine_with_defaults(
            repository_factory,
            {
                "primary_strategy": "historicalPrice",
                "strategy_options": {"historical_period": TimePeriod.SEVEN_DAYS.value},
            },
        )


__all__ = [
    "ComparisonEnginePresets",
    "create_comparison_engine",
    "create_comparison_engine_with_defaults",
]
