"""Historical price comparison strategy.

Scores an offer by its current effective price, adjusted for the item's
recent trend, price stability and distance from the best price seen.
"""

import asyncio
import logging
from typing import Any, Optional

from pricewise.compare.base import BaseComparator, build_validation, check_boolean, check_number
from pricewise.compare.trend_analysis import TrendAnalysisOptions
from pricewise.compare.types import (
    ComparisonResult,
    PriceStatistics,
    PriceTrend,
    TimePeriod,
    TrendDirection,
    ValidationResult,
)
from pricewise.domain import HistoricalPrice, InventoryItem, Offer, Supplier
from pricewise.repositories.base import RepositoryFactory
from pricewise.services.historical_prices import HistoricalPriceService

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.3

# Share of the current price added per unit of trend strength
TREND_DIRECTION_FACTORS = {
    TrendDirection.DOWN: -0.1,
    TrendDirection.UP: 0.1,
    TrendDirection.STABLE: 0.0,
    TrendDirection.VOLATILE: 0.15,
}


class HistoricalPriceComparator(BaseComparator):
    """Compares offers using the item's historical price distribution."""

    id = "historicalPrice"
    name = "Historical Price Trend"
    description = "Compares offers based on historical price trends, stability, and volatility"
    version = "1.0.0"

    def __init__(self, repository_factory: RepositoryFactory):
        self.service = HistoricalPriceService(repository_factory)

    async def perform_comparison(
        self,
        offer: Offer,
        all_offers: list[Offer],
        inventory_item: InventoryItem,
        suppliers: dict[str, Supplier],
        options: dict[str, Any],
    ) -> ComparisonResult:
        period = options["historical_period"]
        trend, stats, best = await asyncio.gather(
            self.service.get_price_trend(
                offer.inventory_item_id,
                TrendAnalysisOptions(period=period, supplier_id=offer.supplier_id),
            ),
            self.service.get_price_statistics(offer.inventory_item_id, period, offer.supplier_id),
            self.service.get_best_historical_price(offer.inventory_item_id, period, offer.supplier_id),
        )

        current = offer.effective_price_per_canonical
        if stats is None or stats.count < options["min_historical_data_points"]:
            logger.debug(
                f"Not enough history for offer {offer.id} "
                f"({stats.count if stats else 0} points), using current price"
            )
            return self.create_result(
                offer,
                current,
                flags=["no-historical-data", "fallback-comparison"],
                score_breakdown={"current_price": current, "historical_data": 0, "fallback": 1},
                explanation="Historical price data not available, using current price only",
                confidence=FALLBACK_CONFIDENCE,
            )

        trend_adjustment = 0.0
        if trend is not None:
            trend_adjustment = self.calculate_trend_adjustment(current, trend, stats, options)

        stability_adjustment = 0.0
        if options["prefer_stable_prices"]:
            stability_adjustment = self.calculate_stability_adjustment(current, stats)

        best_price_adjustment = 0.0
        if best is not None and options["use_best_historical_price"]:
            best_price_adjustment = self.calculate_best_price_adjustment(current, best.price)

        score = (
            current * options["current_price_weight"]
            + trend_adjustment * options["trend_weight"]
            + stability_adjustment
            + best_price_adjustment
        )

        flags, trend_info, stats_info, best_info = self._describe(offer, trend, stats, best, options)
        result = self.create_result(
            offer,
            score,
            flags=flags,
            score_breakdown={
                "current_price": current,
                "trend_adjustment": trend_adjustment,
                "stability_adjustment": stability_adjustment,
                "best_price_adjustment": best_price_adjustment,
            },
            trend=trend_info,
            statistics=stats_info,
            best_historical_price=best_info,
        )
        result.metadata.explanation = self._explain(offer, trend_info, stats_info, best_info, options)
        return result

    @staticmethod
    def calculate_trend_adjustment(
        current_price: float,
        trend: PriceTrend,
        stats: PriceStatistics,
        options: dict[str, Any],
    ) -> float:
        """Penalty (positive) or bonus (negative) from the trend direction and volatility."""
        adjustment = current_price * TREND_DIRECTION_FACTORS[TrendDirection(trend.direction)] * trend.strength

        if options["consider_volatility"] and stats.volatility > options["max_volatility"]:
            adjustment += current_price * (stats.volatility - options["max_volatility"]) * 0.2

        return adjustment

    @staticmethod
    def calculate_stability_adjustment(current_price: float, stats: PriceStatistics) -> float:
        # Lower scores rank better, so the stability bonus is negative
        return -(current_price * (1 - stats.volatility) * 0.05)

    @staticmethod
    def calculate_best_price_adjustment(current_price: float, best_price: float) -> float:
        if best_price <= 0:
            return 0.0
        increase = (current_price - best_price) / best_price
        if increase > 0.2:
            return current_price * increase * 0.1
        if increase <= 0:
            return -current_price * abs(increase) * 0.05
        return 0.0

    def _describe(
        self,
        offer: Offer,
        trend: Optional[PriceTrend],
        stats: PriceStatistics,
        best: Optional[HistoricalPrice],
        options: dict[str, Any],
    ):
        flags = []
        trend_info = stats_info = best_info = None

        if trend is not None:
            direction = TrendDirection(trend.direction).value
            trend_info = {
                "direction": direction,
                "strength": trend.strength,
                "change_percentage": trend.change_percentage,
                "confidence": trend.confidence,
            }
            flags.append(f"trend-{direction}")

        stats_info = {
            "average": stats.average,
            "volatility": stats.volatility,
            "data_point_count": stats.count,
        }
        if stats.volatility > options["max_volatility"]:
            flags.append("high-volatility")

        if best is not None and best.price > 0:
            increase = (offer.effective_price_per_canonical - best.price) / best.price
            best_info = {
                "price": best.price,
                "observed_at": best.observed_at,
                "price_increase": increase * 100,
            }
            if increase > 0.2:
                flags.append("above-historical-best")
            elif increase <= 0:
                flags.append("at-or-below-historical-best")

        return flags, trend_info, stats_info, best_info

    @staticmethod
    def _explain(offer, trend_info, stats_info, best_info, options) -> str:
        parts = [f"Current price: {offer.effective_price_per_canonical:.4f} per {offer.amount_unit}"]
        if trend_info:
            parts.append(
                f"Price trend: {trend_info['direction']} "
                f"({trend_info['change_percentage']:.1f}% change)"
            )
        if stats_info:
            parts.append(
                f"Average price: {stats_info['average']:.4f} "
                f"({stats_info['data_point_count']} data points)"
            )
            if stats_info["volatility"] > options["max_volatility"]:
                parts.append(f"High volatility: {stats_info['volatility'] * 100:.1f}%")
        if best_info:
            if best_info["price_increase"] > 0:
                parts.append(f"Above historical best by {best_info['price_increase']:.1f}%")
            else:
                parts.append("At or below historical best price")
        return "; ".join(parts)

    def validate_options(self, options: Optional[dict[str, Any]] = None) -> ValidationResult:
        normalized = {**self.get_default_options(), **(options or {})}
        errors: list[str] = []
        warnings: list[str] = []

        valid_periods = [p.value for p in TimePeriod]
        if normalized.get("historical_period") not in valid_periods:
            errors.append(f"historical_period must be one of: {', '.join(valid_periods)}")

        check_number(
            normalized, "trend_weight", errors, 0, 1,
            message="trend_weight must be between 0 and 1",
        )
        check_number(
            normalized, "current_price_weight", errors, 0, 1,
            message="current_price_weight must be between 0 and 1",
        )
        check_boolean(normalized, "prefer_stable_prices", errors)
        check_boolean(normalized, "consider_volatility", errors)
        check_boolean(normalized, "use_best_historical_price", errors)
        check_number(
            normalized, "max_volatility", errors, 0, 1,
            message="max_volatility must be between 0 and 1",
        )
        check_number(
            normalized, "min_historical_data_points", errors, 1,
            message="min_historical_data_points must be at least 1",
        )

        if not errors:
            total_weight = normalized["trend_weight"] + normalized["current_price_weight"]
            if abs(total_weight - 1.0) > 0.01:
                warnings.append("trend_weight and current_price_weight should sum to 1.0")

        return build_validation(normalized, errors, warnings)

    def get_default_options(self) -> dict[str, Any]:
        return {
            "historical_period": TimePeriod.THIRTY_DAYS.value,
            "trend_weight": 0.3,
            "current_price_weight": 0.7,
            "prefer_stable_prices": True,
            "consider_volatility": True,
            "max_volatility": 0.2,
            "use_best_historical_price": True,
            "min_historical_data_points": 3,
        }
