"""Post-processing helpers for comparison results and configs."""

import math
import statistics
from dataclasses import asdict, fields
from typing import Any, Iterable, Optional, Union

from pricewise.compare.types import (
    ComparisonConfig,
    ComparisonResult,
    ComparisonStatistics,
    GlobalOptions,
    ItemComparisonResults,
    PriceDifference,
    SecondaryStrategy,
    ValidationResult,
)
from pricewise.config import settings

STRATEGY_DESCRIPTIONS = {
    "pricePerCanonical": "Compare by price per canonical unit (most accurate for different quantities)",
    "totalPrice": "Compare by total price regardless of quantity",
    "pricePerUnit": "Compare by price per display unit (not canonical)",
    "qualityAdjustedPrice": "Adjust price based on quality rating",
    "historicalPrice": "Factor in historical price trends and stability",
    "recentPrice": "Prefer more recent price observations",
    "supplierReliability": "Factor in supplier reliability scores",
}

STRATEGY_SUITABILITY = {
    "pricePerCanonical": {"price", "bulk"},
    "totalPrice": {"price"},
    "pricePerUnit": {"price"},
    "qualityAdjustedPrice": {"price", "quality"},
    "historicalPrice": {"recent"},
    "recentPrice": {"recent"},
    "supplierReliability": {"reliability"},
}


def format_comparison_results(results: ItemComparisonResults) -> str:
    """Render comparison results as plain text."""
    item_name = results.inventory_item.name if results.inventory_item else "unknown item"
    meta = results.metadata
    lines = [
        f"Comparison Results for {item_name}",
        f"Strategy: {meta.strategy_used}",
        f"Total Offers: {meta.total_offers}",
        f"Execution Time: {meta.execution_time_ms:.1f}ms",
        "",
    ]

    if meta.error:
        lines.append(f"Error: {meta.error}")
        lines.append("")

    best = results.best_offer
    if best:
        lines.append("Best Offer:")
        lines.append(f"  Supplier: {best.offer.supplier_name_snapshot or 'Unknown'}")
        lines.append(f"  Price: {best.offer.currency} {best.score:.4f}")
        lines.append(f"  Score: {best.score:.4f}")
        if best.metadata.confidence:
            lines.append(f"  Confidence: {best.metadata.confidence * 100:.1f}%")
        lines.append("")

    lines.append("All Offers (sorted by score):")
    for index, result in enumerate(results.results, 1):
        supplier = result.offer.supplier_name_snapshot or "Unknown"
        flags = ", ".join(result.metadata.flags) or "none"
        lines.append(
            f"  {index}. {supplier}: {result.offer.currency} {result.score:.4f} (flags: {flags})"
        )

    return "\n".join(lines) + "\n"


def calculate_price_difference(first: ComparisonResult, second: ComparisonResult) -> PriceDifference:
    """
    Absolute and percentage gap between two results.

    The percentage is relative to the cheaper score and is ``inf`` when the
    cheaper score is 0 (0 when both are 0).
    """
    absolute = abs(first.score - second.score)
    cheaper, more_expensive = (first, second) if first.score < second.score else (second, first)
    if cheaper.score == 0:
        percentage = math.inf if absolute else 0.0
    else:
        percentage = absolute / cheaper.score * 100
    return PriceDifference(absolute, percentage, cheaper, more_expensive)


def filter_comparison_results(
    results: Iterable[ComparisonResult],
    *,
    min_confidence: Optional[float] = None,
    max_price: Optional[float] = None,
    min_quality_rating: Optional[int] = None,
    include_flags: Optional[Iterable[str]] = None,
    exclude_flags: Optional[Iterable[str]] = None,
    suppliers: Optional[Iterable[str]] = None,
) -> list[ComparisonResult]:
    """Keep results matching every provided criterion."""
    include_flags = set(include_flags) if include_flags is not None else None
    exclude_flags = set(exclude_flags or ())
    suppliers = set(suppliers) if suppliers is not None else None

    def matches(result: ComparisonResult) -> bool:
        flags = set(result.metadata.flags)
        if min_confidence is not None and (result.metadata.confidence or 0.0) < min_confidence:
            return False
        if max_price is not None and result.score > max_price:
            return False
        if min_quality_rating is not None and (result.offer.quality_rating or 0) < min_quality_rating:
            return False
        if include_flags is not None and not flags & include_flags:
            return False
        if flags & exclude_flags:
            return False
        if suppliers is not None and result.offer.supplier_id not in suppliers:
            return False
        return True

    return [r for r in results if matches(r)]


def group_results_by_supplier(results: Iterable[ComparisonResult]) -> dict[str, list[ComparisonResult]]:
    grouped: dict[str, list[ComparisonResult]] = {}
    for result in results:
        grouped.setdefault(result.offer.supplier_id, []).append(result)
    return grouped


def calculate_comparison_statistics(results: list[ComparisonResult]) -> ComparisonStatistics:
    """Statistics over result scores; all zero for an empty list."""
    if not results:
        return ComparisonStatistics()

    scores = [r.score for r in results]
    average = statistics.fmean(scores)
    return ComparisonStatistics(
        count=len(scores),
        average_price=average,
        median_price=statistics.median(scores),
        min_price=min(scores),
        max_price=max(scores),
        standard_deviation=statistics.pstdev(scores, mu=average),
        price_range=max(scores) - min(scores),
        average_confidence=statistics.fmean(r.metadata.confidence or 0.0 for r in results),
    )


def validate_comparison_config(config: ComparisonConfig) -> ValidationResult:
    """Structural checks that need no strategy registry."""
    errors: list[str] = []
    warnings: list[str] = []

    if not config.primary_strategy:
        errors.append("Primary strategy is required")

    options = config.global_options
    if options.max_results is not None and options.max_results < 1:
        errors.append("max_results must be at least 1")
    if options.min_confidence is not None and not 0 <= options.min_confidence <= 1:
        errors.append("min_confidence must be between 0 and 1")

    if sum(s.weight for s in config.secondary_strategies) > 1:
        warnings.append("Total weight of secondary strategies exceeds 1.0")

    return ValidationResult(
        is_valid=not errors,
        error="; ".join(errors) if errors else None,
        warnings=warnings,
    )


def create_simple_config(strategy_id: str) -> ComparisonConfig:
    return ComparisonConfig(
        primary_strategy=strategy_id,
        global_options=GlobalOptions(
            include_deleted=False,
            max_results=settings.default_max_results,
            sort_direction=settings.default_sort_direction,
            min_confidence=settings.default_min_confidence,
            include_incomplete=True,
        ),
    )


def merge_comparison_configs(
    base: ComparisonConfig,
    overrides: Union[ComparisonConfig, dict[str, Any]],
) -> ComparisonConfig:
    """
    Shallow-merge overrides onto a base config.

    ``strategy_options`` and ``global_options`` merge key by key; every
    other provided key replaces the base value.
    """
    if isinstance(overrides, ComparisonConfig):
        overrides = overrides.to_dict()

    global_overrides = overrides.get("global_options") or {}
    if isinstance(global_overrides, GlobalOptions):
        global_overrides = asdict(global_overrides)
    known = {f.name for f in fields(GlobalOptions)}
    global_options = GlobalOptions(**{
        **asdict(base.global_options),
        **{k: v for k, v in global_overrides.items() if k in known},
    })

    secondary = overrides.get("secondary_strategies")
    if secondary is None:
        secondary = base.secondary_strategies
    secondary = [
        s if isinstance(s, SecondaryStrategy) else SecondaryStrategy(**s)
        for s in secondary
    ]

    return ComparisonConfig(
        primary_strategy=overrides.get("primary_strategy") or base.primary_strategy,
        strategy_options={**base.strategy_options, **(overrides.get("strategy_options") or {})},
        secondary_strategies=secondary,
        global_options=global_options,
    )


def get_strategy_description(strategy_id: str) -> str:
    return STRATEGY_DESCRIPTIONS.get(strategy_id, "Unknown strategy")


def is_strategy_suitable(strategy_id: str, use_case: str) -> bool:
    """Whether a strategy suits a use case: price, quality, bulk, recent or reliability."""
    return use_case in STRATEGY_SUITABILITY.get(strategy_id, set())
