"""Comparison strategy registry."""

from __future__ import annotations

from pricewise.compare.base import BaseComparator
from pricewise.compare.strategies.historical import HistoricalPriceComparator
from pricewise.compare.strategies.price import (
    PricePerCanonicalComparator,
    PricePerUnitComparator,
    QualityAdjustedPriceComparator,
    TotalPriceComparator,
)
from pricewise.repositories.base import RepositoryFactory


def build_comparators(repository_factory: RepositoryFactory) -> dict[str, BaseComparator]:
    """Return the built-in comparators keyed by strategy id."""
    comparators: list[BaseComparator] = [
        PricePerCanonicalComparator(),
        TotalPriceComparator(),
        PricePerUnitComparator(),
        QualityAdjustedPriceComparator(),
        HistoricalPriceComparator(repository_factory),
    ]
    return {comparator.id: comparator for comparator in comparators}


__all__ = [
    "HistoricalPriceComparator",
    "PricePerCanonicalComparator",
    "PricePerUnitComparator",
    "QualityAdjustedPriceComparator",
    "TotalPriceComparator",
    "build_comparators",
]
