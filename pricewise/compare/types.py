"""Types shared by the comparison engine, its comparators and trend analysis."""

import copy
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Protocol, runtime_checkable

from pricewise.compare.errors import InvalidDataError
from pricewise.domain import HistoricalPrice, InventoryItem, Offer, Supplier


class TimePeriod(str, Enum):
    """Look-back window for trend and statistics queries."""

    ONE_DAY = "1d"
    SEVEN_DAYS = "7d"
    THIRTY_DAYS = "30d"
    NINETY_DAYS = "90d"
    ONE_YEAR = "1y"
    ALL = "all"

    @classmethod
    def parse(cls, period) -> "TimePeriod":
        try:
            return cls(period)
        except ValueError:
            raise InvalidDataError(f"Unknown time period: {period}") from None


class TrendDirection(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"
    VOLATILE = "volatile"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


# =============================================================================
# Trend and statistics results
# =============================================================================


@dataclass
class PriceStatistics:
    """Statistical summary of a price series over a period."""

    min: float
    max: float
    average: float
    median: float
    standard_deviation: float
    volatility: float                   # standard_deviation / average
    count: int
    period: str

    @property
    def price_range(self) -> float:
        return self.max - self.min


@dataclass
class PriceTrend:
    """Direction and strength of a price series."""

    inventory_item_id: str
    period: str
    direction: TrendDirection
    strength: float                     # 0.0-1.0
    change_amount: float                # end_price - start_price
    change_percentage: float
    start_price: float
    end_price: float
    data_point_count: int
    confidence: float                   # 0.0-1.0
    calculated_at: datetime
    supplier_id: Optional[str] = None


@dataclass
class PriceAnomaly:
    """A price point that deviates strongly from its series."""

    price: HistoricalPrice
    anomaly_type: str                   # "high" or "low"
    deviation: float                    # Standard deviations from the mean


@dataclass
class PricePrediction:
    """Short-horizon price forecast with a plausible range."""

    predicted_price: float
    confidence: float
    range_min: float
    range_max: float

    @property
    def range(self) -> tuple[float, float]:
        return (self.range_min, self.range_max)


# =============================================================================
# Comparison configuration
# =============================================================================


@dataclass
class SecondaryStrategy:
    """An additional strategy blended into the primary ranking."""

    strategy_id: str
    weight: float
    options: dict[str, Any] = field(default_factory=dict)


@dataclass
class GlobalOptions:
    """Options applied to the whole comparison rather than one strategy."""

    include_deleted: bool = False
    max_results: Optional[int] = None
    sort_direction: str = SortDirection.ASC.value
    min_confidence: Optional[float] = None
    include_incomplete: bool = True


@dataclass
class ComparisonConfig:
    """Complete configuration for one comparison run."""

    primary_strategy: str
    strategy_options: dict[str, Any] = field(default_factory=dict)
    secondary_strategies: list[SecondaryStrategy] = field(default_factory=list)
    global_options: GlobalOptions = field(default_factory=GlobalOptions)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ComparisonConfig":
        return cls(
            primary_strategy=data.get("primary_strategy", ""),
            strategy_options=dict(data.get("strategy_options") or {}),
            secondary_strategies=[
                s if isinstance(s, SecondaryStrategy) else SecondaryStrategy(**s)
                for s in data.get("secondary_strategies") or []
            ],
            global_options=GlobalOptions(**(data.get("global_options") or {})),
        )

    def copy(self) -> "ComparisonConfig":
        return copy.deepcopy(self)


# =============================================================================
# Comparison results
# =============================================================================


@dataclass
class ComparisonMetadata:
    """Explanation and diagnostics attached to a single offer's score."""

    explanation: Optional[str] = None
    flags: list[str] = field(default_factory=list)
    confidence: Optional[float] = None
    score_breakdown: dict[str, Any] = field(default_factory=dict)
    trend: Optional[dict[str, Any]] = None
    statistics: Optional[dict[str, Any]] = None
    best_historical_price: Optional[dict[str, Any]] = None


@dataclass
class ComparisonResult:
    """Score for one offer under one strategy (or a composite of strategies)."""

    offer: Offer
    score: float
    metadata: ComparisonMetadata = field(default_factory=ComparisonMetadata)

    @property
    def supplier_id(self) -> str:
        return self.offer.supplier_id


@dataclass
class ComparisonRunMetadata:
    """Bookkeeping for one compare_offers call."""

    total_offers: int
    excluded_offers: int
    execution_time_ms: float
    strategy_used: str
    compared_at: datetime
    cache_hit: bool = False
    error: Optional[str] = None


@dataclass
class ItemComparisonResults:
    """Ranked comparison output for one inventory item."""

    inventory_item: Optional[InventoryItem]
    results: list[ComparisonResult]
    best_offer: Optional[ComparisonResult]
    config: ComparisonConfig
    metadata: ComparisonRunMetadata

    @property
    def failed(self) -> bool:
        return self.metadata.error is not None


@dataclass
class ValidationResult:
    """Outcome of validating strategy options or a config."""

    is_valid: bool
    error: Optional[str] = None
    warnings: list[str] = field(default_factory=list)
    normalized_options: dict[str, Any] = field(default_factory=dict)


@dataclass
class StrategyInfo:
    """Description of a registered comparison strategy."""

    id: str
    name: str
    description: str
    version: str
    default_options: dict[str, Any] = field(default_factory=dict)


@dataclass
class PriceDifference:
    """Absolute and relative gap between two comparison results."""

    absolute: float
    percentage: float
    cheaper: ComparisonResult
    more_expensive: ComparisonResult


@dataclass
class ComparisonStatistics:
    """Aggregate statistics over a list of comparison results."""

    count: int = 0
    average_price: float = 0.0
    median_price: float = 0.0
    min_price: float = 0.0
    max_price: float = 0.0
    standard_deviation: float = 0.0
    price_range: float = 0.0
    average_confidence: float = 0.0


@runtime_checkable
class Comparator(Protocol):
    """A pluggable scoring strategy."""

    id: str
    name: str
    description: str
    version: str

    def validate_options(self, options: Optional[dict[str, Any]] = None) -> ValidationResult:
        ...

    def get_default_options(self) -> dict[str, Any]:
        ...

    async def compare(
        self,
        offer: Offer,
        all_offers: list[Offer],
        inventory_item: InventoryItem,
        suppliers: dict[str, Supplier],
        options: Optional[dict[str, Any]] = None,
    ) -> ComparisonResult:
        ...
