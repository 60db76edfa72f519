"""Base comparator shared by every comparison strategy."""

import logging
import math
from abc import ABC, abstractmethod
from typing import Any, Optional

from pricewise.compare.errors import ComparisonError, ValidationError
from pricewise.compare.types import ComparisonMetadata, ComparisonResult, ValidationResult
from pricewise.config import settings
from pricewise.domain import InventoryItem, Offer, Supplier
from pricewise.utils.timestamps import days_between, utcnow

logger = logging.getLogger(__name__)


class BaseComparator(ABC):
    """
    Common plumbing for comparison strategies.

    ``compare`` validates inputs and options, delegates scoring to
    ``perform_comparison``, then fills in an explanation and a confidence
    when the strategy did not set them.
    """

    id: str = ""
    name: str = ""
    description: str = ""
    version: str = "1.0.0"

    async def compare(
        self,
        offer: Offer,
        all_offers: list[Offer],
        inventory_item: InventoryItem,
        suppliers: dict[str, Supplier],
        options: Optional[dict[str, Any]] = None,
    ) -> ComparisonResult:
        """
        Score one offer against the full offer set.

        Args:
            offer: Offer to score (must be part of ``all_offers``)
            all_offers: Every offer being compared for the item
            inventory_item: Item the offers are for
            suppliers: Suppliers keyed by id
            options: Strategy options; defaults fill anything missing

        Returns:
            ComparisonResult for ``offer``

        Raises:
            ValidationError: Bad inputs or options
            ComparisonError: Any other failure while scoring
        """
        try:
            self.validate_inputs(offer, all_offers, inventory_item, suppliers)

            validation = self.validate_options(options)
            if not validation.is_valid:
                raise ValidationError(
                    f"Invalid options for comparator {self.id}: {validation.error}",
                    "INVALID_OPTIONS",
                )

            normalized = validation.normalized_options or self.get_default_options()
            result = await self.perform_comparison(
                offer, all_offers, inventory_item, suppliers, normalized
            )

            if not result.metadata.explanation:
                result.metadata.explanation = self.generate_explanation(offer, result)
            if result.metadata.confidence is None:
                result.metadata.confidence = self.calculate_confidence(offer, all_offers)
            return result

        except ComparisonError:
            raise
        except Exception as e:
            raise ComparisonError(
                f"Error in comparator {self.id}: {e}",
                "COMPARISON_ERROR",
                original_error=e,
            ) from e

    @abstractmethod
    async def perform_comparison(
        self,
        offer: Offer,
        all_offers: list[Offer],
        inventory_item: InventoryItem,
        suppliers: dict[str, Supplier],
        options: dict[str, Any],
    ) -> ComparisonResult:
        """Compute the strategy's score for ``offer``."""

    def validate_inputs(
        self,
        offer: Offer,
        all_offers: list[Offer],
        inventory_item: InventoryItem,
        suppliers: dict[str, Supplier],
    ) -> None:
        if offer is None:
            raise ValidationError("Offer is required", "INVALID_INPUT")
        if inventory_item is None:
            raise ValidationError("Inventory item is required", "INVALID_INPUT")
        if not isinstance(suppliers, dict):
            raise ValidationError("Suppliers must be a mapping of id to supplier", "INVALID_INPUT")
        if not any(o.id == offer.id for o in all_offers):
            raise ValidationError("Offer must be included in all_offers", "INVALID_INPUT")

        mismatched = [o for o in all_offers if o.inventory_item_id != inventory_item.id]
        if mismatched:
            raise ValidationError(
                f"Found {len(mismatched)} offers for different inventory items",
                "INVALID_INPUT",
            )

    def validate_options(self, options: Optional[dict[str, Any]] = None) -> ValidationResult:
        return ValidationResult(
            is_valid=True,
            normalized_options={**self.get_default_options(), **(options or {})},
        )

    def get_default_options(self) -> dict[str, Any]:
        return {}

    def generate_explanation(self, offer: Offer, result: ComparisonResult) -> str:
        price = self.format_price(offer.effective_price_per_canonical, offer.currency)
        return (
            f"{self.get_supplier_name(offer)} offer: {price} per "
            f"{offer.amount_canonical:g} {offer.amount_unit} (score: {result.score:.4f})"
        )

    def calculate_confidence(self, offer: Offer, all_offers: list[Offer]) -> float:
        """Confidence in a score, lowered for missing or outlying offer data."""
        confidence = 1.0

        if not offer.quality_rating:
            confidence -= 0.1
        if not offer.supplier_url:
            confidence -= 0.05
        if offer.observed_at is None or self.is_offer_stale(offer):
            confidence -= 0.2

        prices = [
            o.effective_price_per_canonical
            for o in all_offers
            if o.effective_price_per_canonical is not None
        ]
        if prices and offer.effective_price_per_canonical is not None:
            avg_price = sum(prices) / len(prices)
            if avg_price > 0:
                deviation = abs(offer.effective_price_per_canonical - avg_price) / avg_price
                if deviation > 0.5:
                    confidence -= 0.3

        return max(0.0, min(1.0, confidence))

    def is_offer_stale(self, offer: Offer, max_age_days: Optional[int] = None) -> bool:
        max_age = max_age_days if max_age_days is not None else settings.stale_offer_days
        return days_between(offer.observed_at, utcnow()) > max_age

    def get_supplier_name(self, offer: Offer) -> str:
        return offer.supplier_name_snapshot or f"Supplier {offer.supplier_id}"

    def get_supplier(self, offer: Offer, suppliers: dict[str, Supplier]) -> Optional[Supplier]:
        return suppliers.get(offer.supplier_id)

    @staticmethod
    def format_price(price: Optional[float], currency: str) -> str:
        if price is None or not math.isfinite(price):
            return f"{currency} n/a"
        return f"{currency} {price:.4f}"

    def create_result(
        self,
        offer: Offer,
        score: float,
        *,
        flags: Optional[list[str]] = None,
        score_breakdown: Optional[dict[str, Any]] = None,
        **metadata: Any,
    ) -> ComparisonResult:
        return ComparisonResult(
            offer=offer,
            score=score,
            metadata=ComparisonMetadata(
                flags=list(flags or []),
                score_breakdown=dict(score_breakdown or {}),
                **metadata,
            ),
        )


def check_boolean(options: dict[str, Any], name: str, errors: list[str]) -> None:
    if not isinstance(options.get(name), bool):
        errors.append(f"{name} must be a boolean")


def check_number(
    options: dict[str, Any],
    name: str,
    errors: list[str],
    low: Optional[float] = None,
    high: Optional[float] = None,
    message: Optional[str] = None,
) -> None:
    value = options.get(name)
    valid = isinstance(value, (int, float)) and not isinstance(value, bool)
    if valid and low is not None and value < low:
        valid = False
    if valid and high is not None and value > high:
        valid = False
    if not valid:
        errors.append(message or f"{name} must be a number")


def build_validation(
    normalized: dict[str, Any],
    errors: list[str],
    warnings: Optional[list[str]] = None,
) -> ValidationResult:
    return ValidationResult(
        is_valid=not errors,
        error=", ".join(errors) if errors else None,
        warnings=list(warnings or []),
        normalized_options=normalized,
    )
