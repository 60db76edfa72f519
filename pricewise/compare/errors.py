"""Error hierarchy for the comparison engine."""

from typing import Optional


class ComparisonError(Exception):
    """Base error raised by the comparison engine and its comparators."""

    code = "COMPARISON_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.original_error = original_error

    def __str__(self) -> str:
        return self.message


class NotFoundError(ComparisonError):
    """Referenced inventory item (or other entity) does not exist."""

    code = "ITEM_NOT_FOUND"


class StrategyNotFoundError(ComparisonError):
    """A strategy id is not registered with the engine."""

    code = "STRATEGY_NOT_FOUND"

    def __init__(self, strategy_id: str, message: Optional[str] = None):
        super().__init__(message or f"Strategy not found: {strategy_id}")
        self.strategy_id = strategy_id


class InvalidConfigError(ComparisonError):
    """Comparison config violates a structural or numeric constraint."""

    code = "INVALID_CONFIG"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ValidationError(ComparisonError):
    """Strategy options or comparator inputs failed validation."""

    code = "INVALID_OPTIONS"


class InvalidDataError(ComparisonError):
    """Input data cannot be processed (empty series, unknown period, ...)."""

    code = "INVALID_DATA"
