"""Summary statistics over historical price series."""

import statistics
from typing import Iterable, Sequence, Union

from pricewise.compare.errors import InvalidDataError
from pricewise.compare.types import PriceStatistics, TimePeriod
from pricewise.domain import HistoricalPrice


def _price_values(prices: Iterable[Union[HistoricalPrice, float]]) -> list[float]:
    return [p.price if isinstance(p, HistoricalPrice) else float(p) for p in prices]


def coefficient_of_variation(values: Sequence[float]) -> float:
    """Population standard deviation divided by the mean (0 for a zero mean)."""
    if not values:
        return 0.0
    mean = statistics.fmean(values)
    if mean == 0:
        return 0.0
    return statistics.pstdev(values, mu=mean) / mean


def calculate_price_statistics(
    prices: Sequence[Union[HistoricalPrice, float]],
    period: Union[TimePeriod, str] = TimePeriod.ALL,
) -> PriceStatistics:
    """
    Calculate min/max/mean/median/std-dev/volatility over a price series.

    All prices are treated as the same currency.

    Args:
        prices: Historical price points (or raw price values)
        period: Period the series covers, carried onto the result

    Returns:
        PriceStatistics for the series

    Raises:
        InvalidDataError: If ``prices`` is empty or ``period`` is unknown
    """
    if not prices:
        raise InvalidDataError("Cannot calculate statistics for empty price array")

    values = sorted(_price_values(prices))
    average = statistics.fmean(values)
    std_dev = statistics.pstdev(values, mu=average)

    return PriceStatistics(
        min=values[0],
        max=values[-1],
        average=average,
        median=statistics.median(values),
        standard_deviation=std_dev,
        volatility=std_dev / average if average > 0 else 0.0,
        count=len(values),
        period=TimePeriod.parse(period).value,
    )
