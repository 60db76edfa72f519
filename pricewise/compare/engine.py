"""Comparison engine.

Loads an inventory item with its offers and suppliers, scores every offer
with the configured strategies and returns the ranked results.
"""

import asyncio
import logging
import time
from dataclasses import replace
from typing import Any, Optional, Sequence

from pricewise.compare.base import BaseComparator
from pricewise.compare.cache import ComparisonCache
from pricewise.compare.errors import (
    ComparisonError,
    InvalidConfigError,
    NotFoundError,
    StrategyNotFoundError,
)
from pricewise.compare.strategies import build_comparators
from pricewise.compare.types import (
    ComparisonConfig,
    ComparisonResult,
    ComparisonRunMetadata,
    GlobalOptions,
    ItemComparisonResults,
    SortDirection,
    StrategyInfo,
    ValidationResult,
)
from pricewise.config import settings
from pricewise.domain import InventoryItem, Offer, Supplier
from pricewise.logging_config import ContextLogger, get_logger
from pricewise.metrics import record_comparison
from pricewise.repositories.base import RepositoryFactory
from pricewise.utils.timestamps import utcnow


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _normalize(scores: list[float]) -> list[float]:
    """Min-max scale scores to 0..1 (0.5 for all when they are equal)."""
    low, high = min(scores), max(scores)
    if high == low:
        return [0.5] * len(scores)
    return [(s - low) / (high - low) for s in scores]


class ComparisonEngine:
    """
    Orchestrates offer comparisons for inventory items.

    Comparators are registered once at construction; a config naming an
    unknown strategy is rejected before any repository is touched.
    """

    def __init__(
        self,
        repository_factory: RepositoryFactory,
        *,
        cache: Optional[ComparisonCache] = None,
        logger: Optional[logging.Logger] = None,
        default_config: Optional[ComparisonConfig] = None,
    ):
        self.repository_factory = repository_factory
        self.comparators: dict[str, BaseComparator] = build_comparators(repository_factory)
        self.cache = cache or ComparisonCache()
        if logger is None:
            self.logger = get_logger(__name__, component="comparison_engine")
        else:
            self.logger = ContextLogger(logger, {"component": "comparison_engine"})
        self.default_config = default_config

    # =========================================================================
    # Public API
    # =========================================================================

    async def compare_offers(
        self,
        inventory_item_id: str,
        config: Optional[ComparisonConfig] = None,
    ) -> ItemComparisonResults:
        """
        Compare every offer for an inventory item.

        Args:
            inventory_item_id: Item to compare offers for
            config: Comparison config; the engine's default config when omitted

        Returns:
            ItemComparisonResults with results sorted best-first

        Raises:
            InvalidConfigError: The config is missing or invalid
            NotFoundError: The inventory item does not exist
            ComparisonError: Repository or comparator failure
        """
        config = config or self.default_config
        if config is None:
            raise InvalidConfigError("Comparison config is required")

        self._require_valid(config)

        cached = await self.cache.get(inventory_item_id, config)
        if cached is not None:
            self.logger.bind(
                item_id=inventory_item_id, strategy=config.primary_strategy
            ).debug(f"Cache hit for item {inventory_item_id}")
            return replace(cached, metadata=replace(cached.metadata, cache_hit=True))

        start = time.perf_counter()
        try:
            results = await self._compare(inventory_item_id, config, start)
        except ComparisonError:
            record_comparison(config.primary_strategy, False, time.perf_counter() - start)
            raise
        except Exception as e:
            record_comparison(config.primary_strategy, False, time.perf_counter() - start)
            raise ComparisonError(
                f"Error comparing offers for item {inventory_item_id}: {e}",
                "COMPARISON_ERROR",
                original_error=e,
            ) from e

        record_comparison(
            config.primary_strategy,
            True,
            time.perf_counter() - start,
            results.metadata.total_offers,
        )
        await self.cache.set(inventory_item_id, config, results)
        return results

    async def compare_multiple_items(
        self,
        inventory_item_ids: Sequence[str],
        config: Optional[ComparisonConfig] = None,
    ) -> dict[str, ItemComparisonResults]:
        """
        Compare several items concurrently.

        A failure for one item never affects the others: it is logged and
        returned as an empty result with ``metadata.error`` set.
        """
        config = config or self.default_config
        if config is None:
            raise InvalidConfigError("Comparison config is required")
        self._require_valid(config)

        tasks = [self.compare_offers(item_id, config) for item_id in inventory_item_ids]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        results: dict[str, ItemComparisonResults] = {}
        for item_id, outcome in zip(inventory_item_ids, outcomes):
            if isinstance(outcome, BaseException):
                self.logger.bind(item_id=item_id, strategy=config.primary_strategy).error(
                    f"Error comparing item {item_id}: {outcome}"
                )
                results[item_id] = self._error_results(config, outcome)
            else:
                results[item_id] = outcome

        failed = sum(1 for r in results.values() if r.failed)
        self.logger.info(
            f"Compared {len(inventory_item_ids)} items with {config.primary_strategy} "
            f"({failed} failed)"
        )
        return results

    def get_available_strategies(self) -> list[StrategyInfo]:
        return [
            StrategyInfo(
                id=comparator.id,
                name=comparator.name,
                description=comparator.description,
                version=comparator.version,
                default_options=comparator.get_default_options(),
            )
            for comparator in self.comparators.values()
        ]

    def validate_config(self, config: ComparisonConfig) -> ValidationResult:
        errors, warnings = self._collect_config_errors(config)
        return ValidationResult(
            is_valid=not errors,
            error="; ".join(msg for _, msg in errors) if errors else None,
            warnings=warnings,
        )

    def get_default_config(self, strategy_id: str) -> ComparisonConfig:
        """Ready-to-use config with the strategy's own defaults."""
        comparator = self.get_comparator(strategy_id)
        return ComparisonConfig(
            primary_strategy=strategy_id,
            strategy_options=comparator.get_default_options(),
            global_options=GlobalOptions(
                include_deleted=False,
                max_results=settings.default_max_results,
                sort_direction=settings.default_sort_direction,
                min_confidence=settings.default_min_confidence,
                include_incomplete=True,
            ),
        )

    def get_comparator(self, strategy_id: str) -> BaseComparator:
        comparator = self.comparators.get(strategy_id)
        if comparator is None:
            raise StrategyNotFoundError(strategy_id)
        return comparator

    async def invalidate_cache(self, inventory_item_id: Optional[str] = None) -> int:
        removed = await self.cache.invalidate(inventory_item_id)
        self.logger.debug(f"Invalidated {removed} cached comparisons")
        return removed

    # =========================================================================
    # Validation
    # =========================================================================

    def _require_valid(self, config: ComparisonConfig) -> None:
        errors, warnings = self._collect_config_errors(config)
        if errors:
            raise InvalidConfigError("; ".join(msg for _, msg in errors), field=errors[0][0])
        for warning in warnings:
            self.logger.warning(f"Comparison config warning: {warning}")

    def _collect_config_errors(
        self,
        config: ComparisonConfig,
    ) -> tuple[list[tuple[str, str]], list[str]]:
        errors: list[tuple[str, str]] = []
        warnings: list[str] = []

        primary = config.primary_strategy
        if not primary:
            errors.append(("primary_strategy", "Primary strategy is required"))
        elif primary not in self.comparators:
            errors.append(("primary_strategy", f"Primary strategy '{primary}' not found"))

        for index, secondary in enumerate(config.secondary_strategies or []):
            if secondary.strategy_id not in self.comparators:
                errors.append((
                    "secondary_strategies",
                    f"Secondary strategy '{secondary.strategy_id}' at index {index} not found",
                ))
            if not _is_number(secondary.weight) or not 0 <= secondary.weight <= 1:
                errors.append((
                    "secondary_strategies",
                    f"Secondary strategy weight at index {index} must be between 0 and 1",
                ))

        options = config.global_options or GlobalOptions()
        if options.max_results is not None and (
            not isinstance(options.max_results, int)
            or isinstance(options.max_results, bool)
            or options.max_results < 1
        ):
            errors.append(("max_results", "max_results must be at least 1"))
        if options.min_confidence is not None and (
            not _is_number(options.min_confidence) or not 0 <= options.min_confidence <= 1
        ):
            errors.append(("min_confidence", "min_confidence must be between 0 and 1"))
        if options.sort_direction not in {d.value for d in SortDirection}:
            errors.append(("sort_direction", "sort_direction must be 'asc' or 'desc'"))

        if primary in self.comparators:
            validation = self.comparators[primary].validate_options(config.strategy_options)
            if not validation.is_valid:
                errors.append(("strategy_options", f"Primary strategy options: {validation.error}"))
            warnings.extend(validation.warnings)

        for secondary in config.secondary_strategies or []:
            comparator = self.comparators.get(secondary.strategy_id)
            if comparator is None:
                continue
            validation = comparator.validate_options(secondary.options)
            if not validation.is_valid:
                errors.append((
                    "secondary_strategies",
                    f"Secondary strategy '{secondary.strategy_id}' options: {validation.error}",
                ))
            warnings.extend(validation.warnings)

        total_secondary = sum(
            s.weight for s in config.secondary_strategies or [] if _is_number(s.weight)
        )
        if total_secondary > 1:
            warnings.append("Total weight of secondary strategies exceeds 1.0")

        return errors, warnings

    # =========================================================================
    # Comparison pipeline
    # =========================================================================

    async def _compare(
        self,
        inventory_item_id: str,
        config: ComparisonConfig,
        start: float,
    ) -> ItemComparisonResults:
        options = config.global_options or GlobalOptions()

        item = await self._load_inventory_item(inventory_item_id)
        offers = await self._load_offers(inventory_item_id, options)
        if not offers:
            return self._build_results(item, [], config, 0, 0, start)

        suppliers = await self._load_suppliers()

        candidates = offers
        if not options.include_incomplete:
            candidates = [o for o in offers if o.is_complete]
        if not candidates:
            return self._build_results(item, [], config, len(offers), len(offers), start)

        results = await self._score(candidates, item, suppliers, config)

        if options.min_confidence is not None:
            results = [
                r for r in results
                if (r.metadata.confidence or 0.0) >= options.min_confidence
            ]

        results.sort(
            key=lambda r: r.score,
            reverse=options.sort_direction == SortDirection.DESC.value,
        )
        if options.max_results is not None:
            results = results[:options.max_results]

        return self._build_results(
            item, results, config, len(offers), len(offers) - len(results), start
        )

    async def _score(
        self,
        offers: list[Offer],
        item: InventoryItem,
        suppliers: dict[str, Supplier],
        config: ComparisonConfig,
    ) -> list[ComparisonResult]:
        primary = await self._run_strategy(
            self.comparators[config.primary_strategy], offers, item, suppliers, config.strategy_options
        )
        secondaries = config.secondary_strategies or []
        if not secondaries:
            return primary

        secondary_results = [
            await self._run_strategy(
                self.comparators[s.strategy_id], offers, item, suppliers, s.options
            )
            for s in secondaries
        ]
        return self._combine(config, primary, secondary_results)

    async def _run_strategy(
        self,
        comparator: BaseComparator,
        offers: list[Offer],
        item: InventoryItem,
        suppliers: dict[str, Supplier],
        options: dict[str, Any],
    ) -> list[ComparisonResult]:
        return list(await asyncio.gather(*(
            comparator.compare(offer, offers, item, suppliers, options) for offer in offers
        )))

    def _combine(
        self,
        config: ComparisonConfig,
        primary: list[ComparisonResult],
        secondary_results: list[list[ComparisonResult]],
    ) -> list[ComparisonResult]:
        """Blend normalized strategy scores into one composite score per offer."""
        secondaries = config.secondary_strategies
        primary_weight = max(0.0, 1.0 - sum(s.weight for s in secondaries))
        weights = [primary_weight] + [s.weight for s in secondaries]
        total_weight = sum(weights)
        if total_weight == 0:
            return primary

        strategy_ids = [config.primary_strategy] + [s.strategy_id for s in secondaries]
        all_results = [primary] + secondary_results
        normalized = [_normalize([r.score for r in results]) for results in all_results]

        combined = []
        for i, result in enumerate(primary):
            composite = sum(w * norm[i] for w, norm in zip(weights, normalized)) / total_weight

            breakdown = dict(result.metadata.score_breakdown)
            flags = list(result.metadata.flags)
            for strategy_id, results in zip(strategy_ids, all_results):
                breakdown[f"{strategy_id}_score"] = results[i].score
                flags.extend(f for f in results[i].metadata.flags if f not in flags)
            breakdown["composite_score"] = composite

            combined.append(replace(
                result,
                score=composite,
                metadata=replace(result.metadata, score_breakdown=breakdown, flags=flags),
            ))
        return combined

    async def _load_inventory_item(self, inventory_item_id: str) -> InventoryItem:
        repository = self.repository_factory.get_inventory_item_repository()
        item = await repository.find_by_id(inventory_item_id)
        if item is None:
            raise NotFoundError(f"Inventory item {inventory_item_id} not found")
        return item

    async def _load_offers(self, inventory_item_id: str, options: GlobalOptions) -> list[Offer]:
        repository = self.repository_factory.get_offer_repository()
        return await repository.find_where(
            {"inventory_item_id": inventory_item_id},
            include_deleted=options.include_deleted,
            order_by="observed_at",
            descending=True,
        )

    async def _load_suppliers(self) -> dict[str, Supplier]:
        repository = self.repository_factory.get_supplier_repository()
        return {supplier.id: supplier for supplier in await repository.find_all()}

    def _build_results(
        self,
        item: InventoryItem,
        results: list[ComparisonResult],
        config: ComparisonConfig,
        total_offers: int,
        excluded_offers: int,
        start: float,
    ) -> ItemComparisonResults:
        return ItemComparisonResults(
            inventory_item=item,
            results=results,
            best_offer=results[0] if results else None,
            config=config,
            metadata=ComparisonRunMetadata(
                total_offers=total_offers,
                excluded_offers=excluded_offers,
                execution_time_ms=(time.perf_counter() - start) * 1000,
                strategy_used=config.primary_strategy,
                compared_at=utcnow(),
            ),
        )

    @staticmethod
    def _error_results(config: ComparisonConfig, error: BaseException) -> ItemComparisonResults:
        return ItemComparisonResults(
            inventory_item=None,
            results=[],
            best_offer=None,
            config=config,
            metadata=ComparisonRunMetadata(
                total_offers=0,
                excluded_offers=0,
                execution_time_ms=0.0,
                strategy_used=config.primary_strategy,
                compared_at=utcnow(),
                error=str(error),
            ),
        )
