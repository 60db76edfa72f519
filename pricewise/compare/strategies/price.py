"""Price-based comparison strategies."""

from typing import Any, Optional

from pricewise.compare.base import BaseComparator, build_validation, check_boolean, check_number
from pricewise.compare.types import ComparisonResult, ValidationResult
from pricewise.domain import InventoryItem, Offer, Supplier


def _check_currency_rate(options: dict[str, Any], errors: list[str]) -> None:
    if options.get("currency_rate") is not None:
        check_number(
            options, "currency_rate", errors,
            message="currency_rate must be a positive number",
        )
        rate = options["currency_rate"]
        if isinstance(rate, (int, float)) and not isinstance(rate, bool) and rate <= 0:
            errors.append("currency_rate must be a positive number")


def _apply_currency_rate(price: float, options: dict[str, Any]) -> float:
    rate = options.get("currency_rate")
    if rate and rate != 1.0:
        return price * rate
    return price


def _total_with_extras(offer: Offer, options: dict[str, Any]) -> float:
    """Total price plus shipping and tax the offer does not already include."""
    total = offer.total_price
    if options.get("include_shipping") and not offer.shipping_included and offer.shipping_cost:
        total += offer.shipping_cost
    if options.get("include_tax") and not offer.is_tax_included and offer.tax_rate:
        total *= 1 + offer.tax_rate
    return total


def _inclusion_flags(offer: Offer) -> list[str]:
    flags = []
    if offer.shipping_included:
        flags.append("shipping-included")
    if offer.is_tax_included:
        flags.append("tax-included")
    return flags


class PricePerCanonicalComparator(BaseComparator):
    """Ranks offers by price per canonical unit. The default strategy."""

    id = "pricePerCanonical"
    name = "Price Per Canonical Unit"
    description = (
        "Compares offers by price per canonical unit, with options for including shipping and tax"
    )
    version = "1.0.0"

    async def perform_comparison(
        self,
        offer: Offer,
        all_offers: list[Offer],
        inventory_item: InventoryItem,
        suppliers: dict[str, Supplier],
        options: dict[str, Any],
    ) -> ComparisonResult:
        if options["use_effective_price"]:
            price = offer.effective_price_per_canonical
        elif options["include_shipping"] and options["include_tax"]:
            price = offer.price_per_canonical_incl_shipping
        elif options["include_tax"]:
            price = offer.price_per_canonical_excl_shipping
        else:
            pre_tax = offer.total_price
            if offer.is_tax_included and offer.tax_rate:
                pre_tax = offer.total_price / (1 + offer.tax_rate)
            price = pre_tax / offer.amount_canonical

        price = _apply_currency_rate(price, options)

        flags = _inclusion_flags(offer)
        if offer.quality_rating and offer.quality_rating >= 4:
            flags.append("high-quality")

        return self.create_result(
            offer,
            price,
            flags=flags,
            score_breakdown={
                "base_price": price,
                "shipping_included": 1 if options["include_shipping"] else 0,
                "tax_included": 1 if options["include_tax"] else 0,
            },
        )

    def validate_options(self, options: Optional[dict[str, Any]] = None) -> ValidationResult:
        normalized = {**self.get_default_options(), **(options or {})}
        errors: list[str] = []
        check_boolean(normalized, "include_shipping", errors)
        check_boolean(normalized, "include_tax", errors)
        check_boolean(normalized, "use_effective_price", errors)
        _check_currency_rate(normalized, errors)
        return build_validation(normalized, errors)

    def get_default_options(self) -> dict[str, Any]:
        return {
            "include_shipping": True,
            "include_tax": True,
            "use_effective_price": True,
        }


class TotalPriceComparator(BaseComparator):
    """Ranks offers by total price, ignoring quantity differences."""

    id = "totalPrice"
    name = "Total Price"
    description = "Compares offers by total price regardless of quantity differences"
    version = "1.0.0"

    async def perform_comparison(
        self,
        offer: Offer,
        all_offers: list[Offer],
        inventory_item: InventoryItem,
        suppliers: dict[str, Supplier],
        options: dict[str, Any],
    ) -> ComparisonResult:
        total = _apply_currency_rate(_total_with_extras(offer, options), options)

        flags = _inclusion_flags(offer)
        if offer.amount > 1:
            flags.append("bulk-quantity")

        return self.create_result(
            offer,
            total,
            flags=flags,
            score_breakdown={
                "base_price": offer.total_price,
                "shipping_cost": offer.shipping_cost or 0,
                "tax_cost": 0 if offer.is_tax_included else offer.total_price * (offer.tax_rate or 0),
            },
        )

    def validate_options(self, options: Optional[dict[str, Any]] = None) -> ValidationResult:
        normalized = {**self.get_default_options(), **(options or {})}
        errors: list[str] = []
        check_boolean(normalized, "include_shipping", errors)
        check_boolean(normalized, "include_tax", errors)
        _check_currency_rate(normalized, errors)
        return build_validation(normalized, errors)

    def get_default_options(self) -> dict[str, Any]:
        return {"include_shipping": True, "include_tax": True}


class PricePerUnitComparator(BaseComparator):
    """Ranks offers by price per the offer's own display unit."""

    id = "pricePerUnit"
    name = "Price Per Unit"
    description = "Compares offers by price per display unit (not canonical unit)"
    version = "1.0.0"

    async def perform_comparison(
        self,
        offer: Offer,
        all_offers: list[Offer],
        inventory_item: InventoryItem,
        suppliers: dict[str, Supplier],
        options: dict[str, Any],
    ) -> ComparisonResult:
        total = _total_with_extras(offer, options)
        price_per_unit = _apply_currency_rate(total / offer.amount, options)

        flags = _inclusion_flags(offer)
        if offer.amount_unit != inventory_item.canonical_unit:
            flags.append("non-canonical-unit")

        return self.create_result(
            offer,
            price_per_unit,
            flags=flags,
            score_breakdown={
                "base_price": offer.total_price,
                "amount": offer.amount,
                "unit": offer.amount_unit,
                "price_per_unit": price_per_unit,
            },
        )

    def validate_options(self, options: Optional[dict[str, Any]] = None) -> ValidationResult:
        normalized = {**self.get_default_options(), **(options or {})}
        errors: list[str] = []
        check_boolean(normalized, "include_shipping", errors)
        check_boolean(normalized, "include_tax", errors)
        _check_currency_rate(normalized, errors)
        return build_validation(normalized, errors)

    def get_default_options(self) -> dict[str, Any]:
        return {"include_shipping": True, "include_tax": True}


class QualityAdjustedPriceComparator(BaseComparator):
    """Discounts the effective price of higher-rated offers."""

    id = "qualityAdjustedPrice"
    name = "Quality-Adjusted Price"
    description = (
        "Adjusts price based on quality rating, giving better value to higher quality items"
    )
    version = "1.0.0"

    async def perform_comparison(
        self,
        offer: Offer,
        all_offers: list[Offer],
        inventory_item: InventoryItem,
        suppliers: dict[str, Supplier],
        options: dict[str, Any],
    ) -> ComparisonResult:
        rating = offer.quality_rating
        factor = options["quality_adjustment_factor"]

        adjustment = 0.0
        adjusted_price = offer.effective_price_per_canonical
        if rating and 1 <= rating <= 5:
            adjustment = (1 - rating / 5.0) * factor
            adjusted_price *= 1 - adjustment

        flags = []
        if rating:
            if rating >= 4:
                flags.append("high-quality")
            elif rating <= 2:
                flags.append("low-quality")
            min_rating = options.get("min_quality_rating")
            if min_rating is not None and rating < min_rating:
                flags.append("below-min-quality")
        else:
            flags.append("no-quality-rating")

        return self.create_result(
            offer,
            adjusted_price,
            flags=flags,
            score_breakdown={
                "base_price": offer.effective_price_per_canonical,
                "quality_rating": rating or 0,
                "quality_adjustment": adjustment,
                "adjusted_price": adjusted_price,
            },
        )

    def validate_options(self, options: Optional[dict[str, Any]] = None) -> ValidationResult:
        normalized = {**self.get_default_options(), **(options or {})}
        errors: list[str] = []
        warnings: list[str] = []

        check_number(
            normalized, "quality_adjustment_factor", errors, 0, 1,
            message="quality_adjustment_factor must be a number between 0 and 1",
        )
        check_number(
            normalized, "quality_weight", errors, 0, 1,
            message="quality_weight must be a number between 0 and 1",
        )
        check_number(
            normalized, "price_weight", errors, 0, 1,
            message="price_weight must be a number between 0 and 1",
        )
        check_boolean(normalized, "prefer_higher", errors)
        if normalized.get("min_quality_rating") is not None:
            check_number(
                normalized, "min_quality_rating", errors, 1, 5,
                message="min_quality_rating must be a number between 1 and 5",
            )

        factor = normalized.get("quality_adjustment_factor")
        if isinstance(factor, (int, float)) and factor > 0.5:
            warnings.append(
                "High quality adjustment factor may result in unrealistic price adjustments"
            )

        return build_validation(normalized, errors, warnings)

    def get_default_options(self) -> dict[str, Any]:
        return {
            "quality_weight": 0.2,
            "price_weight": 0.8,
            "quality_adjustment_factor": 0.1,
            "prefer_higher": True,
            "min_quality_rating": 1,
        }
