"""Price trend analysis.

Direction and strength come from a least-squares fit of price against
sequence index. A noisy series whose fit is weak is reclassified as
volatile regardless of its slope.
"""

import logging
import statistics
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional, Sequence, Union

import numpy as np

from pricewise.compare.statistics import coefficient_of_variation
from pricewise.compare.types import (
    PriceAnomaly,
    PricePrediction,
    PriceTrend,
    TimePeriod,
    TrendDirection,
)
from pricewise.domain import HistoricalPrice
from pricewise.metrics import record_trend_analysis
from pricewise.utils.timestamps import days_between, utcnow

logger = logging.getLogger(__name__)

STABLE_SLOPE_THRESHOLD = 0.001
VOLATILITY_CV_THRESHOLD = 0.2
VOLATILITY_STRENGTH_THRESHOLD = 0.3
STRENGTH_MULTIPLIER = 10

EARLIEST_DATE = datetime(2000, 1, 1)

PERIOD_DAYS = {
    TimePeriod.ONE_DAY: 1,
    TimePeriod.SEVEN_DAYS: 7,
    TimePeriod.THIRTY_DAYS: 30,
    TimePeriod.NINETY_DAYS: 90,
    TimePeriod.ONE_YEAR: 365,
    TimePeriod.ALL: 365,  # Predictions over "all" assume a one-year window
}


@dataclass
class TrendAnalysisOptions:
    period: Union[TimePeriod, str] = TimePeriod.THIRTY_DAYS
    min_data_points: Optional[int] = None
    supplier_id: Optional[str] = None


@dataclass
class LinearRegression:
    slope: float
    intercept: float
    r_squared: float


def _sorted_by_time(prices: Sequence[HistoricalPrice]) -> list[HistoricalPrice]:
    return sorted(prices, key=lambda p: p.observed_at)


def calculate_linear_regression(points: Sequence[tuple[float, float]]) -> LinearRegression:
    """
    Least-squares fit of y on x.

    Args:
        points: (x, y) pairs; at least two distinct x values

    Returns:
        LinearRegression with slope, intercept and coefficient of determination
        (0 when the series has no variance)
    """
    x = np.array([p[0] for p in points], dtype=float)
    y = np.array([p[1] for p in points], dtype=float)

    slope, intercept = np.polyfit(x, y, 1)

    predicted = slope * x + intercept
    ss_res = float(np.sum((y - predicted) ** 2))
    ss_tot = float(np.sum((y - y.mean()) ** 2))
    r_squared = 1 - ss_res / ss_tot if ss_tot > 0 else 0.0

    return LinearRegression(slope=float(slope), intercept=float(intercept), r_squared=r_squared)


def _direction_and_strength(sorted_prices: list[HistoricalPrice]) -> tuple[TrendDirection, float]:
    values = [p.price for p in sorted_prices]
    start_price, end_price = values[0], values[-1]

    regression = calculate_linear_regression(list(enumerate(values)))

    if abs(regression.slope) < STABLE_SLOPE_THRESHOLD:
        direction = TrendDirection.STABLE
    elif regression.slope > 0:
        direction = TrendDirection.UP
    else:
        direction = TrendDirection.DOWN

    if start_price:
        change_ratio = abs(end_price - start_price) / start_price
        strength = min(regression.r_squared * change_ratio * STRENGTH_MULTIPLIER, 1.0)
    else:
        strength = 0.0

    if (
        coefficient_of_variation(values) > VOLATILITY_CV_THRESHOLD
        and strength < VOLATILITY_STRENGTH_THRESHOLD
    ):
        direction = TrendDirection.VOLATILE

    return direction, strength


def _trend_confidence(sorted_prices: list[HistoricalPrice], now: datetime) -> float:
    count = len(sorted_prices)
    confidence = 0.5

    # Sample size
    confidence += min(count / 20, 0.3)

    # Recency of the newest observation
    days_since_recent = days_between(sorted_prices[-1].observed_at, now)
    if days_since_recent < 7:
        confidence += 0.2
    elif days_since_recent < 30:
        confidence += 0.1

    # Data quality reported by the observations themselves
    avg_quality = statistics.fmean(
        p.confidence if p.confidence is not None else 0.5 for p in sorted_prices
    )
    confidence += (avg_quality - 0.5) * 0.3

    # Sparse series (fewer than one point per ten days)
    day_span = days_between(sorted_prices[0].observed_at, sorted_prices[-1].observed_at)
    if day_span > 0 and count / day_span < 0.1:
        confidence -= 0.2

    return max(0.0, min(1.0, confidence))


def analyze_price_trend(
    prices: Sequence[HistoricalPrice],
    options: Optional[TrendAnalysisOptions] = None,
    now: Optional[datetime] = None,
) -> Optional[PriceTrend]:
    """
    Analyze the direction, strength and confidence of a price series.

    Input order is irrelevant; points are sorted by observation time first.

    Args:
        prices: Historical price points for one item
        options: Period, minimum point count and supplier scope
        now: Reference time for recency scoring (defaults to the current time)

    Returns:
        PriceTrend, or None when there are too few points
    """
    options = options or TrendAnalysisOptions()
    min_points = max(2, options.min_data_points or 0)
    if len(prices) < min_points:
        return None

    now = now or utcnow()
    sorted_prices = _sorted_by_time(prices)
    start_price = sorted_prices[0].price
    end_price = sorted_prices[-1].price
    change_amount = end_price - start_price
    change_percentage = change_amount / start_price * 100 if start_price else 0.0

    direction, strength = _direction_and_strength(sorted_prices)
    record_trend_analysis(direction.value)

    return PriceTrend(
        inventory_item_id=sorted_prices[0].inventory_item_id,
        supplier_id=options.supplier_id,
        period=TimePeriod.parse(options.period).value,
        direction=direction,
        strength=strength,
        change_amount=change_amount,
        change_percentage=change_percentage,
        start_price=start_price,
        end_price=end_price,
        data_point_count=len(sorted_prices),
        confidence=_trend_confidence(sorted_prices, now),
        calculated_at=now,
    )


def get_time_period_boundaries(
    period: Union[TimePeriod, str],
    now: Optional[datetime] = None,
) -> tuple[datetime, datetime]:
    """Return (start, end) for a period ending now; raises InvalidDataError for unknown periods."""
    period = TimePeriod.parse(period)
    end = now or utcnow()

    if period is TimePeriod.ALL:
        return EARLIEST_DATE, end
    if period is TimePeriod.ONE_YEAR:
        try:
            return end.replace(year=end.year - 1), end
        except ValueError:
            # Feb 29 has no counterpart in the previous year
            return end.replace(year=end.year - 1, day=28), end
    return end - timedelta(days=PERIOD_DAYS[period]), end


def filter_prices_by_period(
    prices: Sequence[HistoricalPrice],
    period: Union[TimePeriod, str],
    now: Optional[datetime] = None,
) -> list[HistoricalPrice]:
    start, end = get_time_period_boundaries(period, now)
    return [p for p in prices if start <= p.observed_at <= end]


def smooth_prices(prices: Sequence[HistoricalPrice], window_size: int = 3) -> list[HistoricalPrice]:
    """Centered moving average over the time-sorted series."""
    if len(prices) < window_size:
        return list(prices)

    sorted_prices = _sorted_by_time(prices)
    n = len(sorted_prices)
    smoothed = []
    for i, point in enumerate(sorted_prices):
        start = max(0, i - window_size // 2)
        end = min(n, start + window_size)
        window = sorted_prices[start:end]
        smoothed.append(replace(point, price=statistics.fmean(p.price for p in window)))
    return smoothed


def detect_price_anomalies(
    prices: Sequence[HistoricalPrice],
    threshold_std_devs: float = 2.0,
) -> list[PriceAnomaly]:
    """
    Flag points more than ``threshold_std_devs`` population standard
    deviations from the series mean.
    """
    if len(prices) < 3:
        return []

    values = [p.price for p in prices]
    mean = statistics.fmean(values)
    std_dev = statistics.pstdev(values, mu=mean)
    if std_dev == 0:
        return []

    anomalies = []
    for point in prices:
        deviation = abs(point.price - mean) / std_dev
        if deviation > threshold_std_devs:
            anomalies.append(PriceAnomaly(
                price=point,
                anomaly_type="high" if point.price > mean else "low",
                deviation=deviation,
            ))

    if anomalies:
        logger.debug(f"Detected {len(anomalies)} price anomalies in {len(prices)} points")
    return anomalies


def predict_future_price(trend: PriceTrend, days_ahead: int = 7) -> PricePrediction:
    """
    Extrapolate a trend ``days_ahead`` days forward.

    Weak or volatile trends predict no change with low confidence.
    """
    if (
        trend.direction == TrendDirection.VOLATILE
        or trend.strength < VOLATILITY_STRENGTH_THRESHOLD
    ):
        return PricePrediction(
            predicted_price=trend.end_price,
            confidence=0.2,
            range_min=trend.end_price * 0.8,
            range_max=trend.end_price * 1.2,
        )

    period_days = PERIOD_DAYS.get(TimePeriod(trend.period), 30)
    daily_change_rate = trend.change_percentage / period_days
    predicted = trend.end_price * (1 + daily_change_rate / 100 * days_ahead)
    volatility = abs(daily_change_rate) * 0.5

    return PricePrediction(
        predicted_price=predicted,
        confidence=min(trend.confidence * trend.strength, 0.8),
        range_min=predicted * (1 - volatility),
        range_max=predicted * (1 + volatility),
    )

