"""Price-per-canonical-unit calculations.

These helpers never raise for bad offer data: a calculation that cannot be
performed returns a result with ``success=False`` and a flag describing why.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Optional

from pricewise.domain import InventoryItem, Offer
from pricewise.units import validate_and_convert

logger = logging.getLogger(__name__)


@dataclass
class PriceCalculationOptions:
    include_shipping: bool = True
    include_tax: bool = True
    use_effective_price: bool = True
    currency_rate: float = 1.0
    min_confidence: float = 0.5


@dataclass
class PriceBreakdown:
    base_price: float = 0.0
    shipping_cost: float = 0.0
    tax_cost: float = 0.0
    total_cost: float = 0.0
    canonical_amount: float = 0.0
    price_per_canonical: float = 0.0


@dataclass
class PriceCalculationResult:
    price_per_canonical: float
    success: bool
    confidence: float
    breakdown: PriceBreakdown = field(default_factory=PriceBreakdown)
    flags: list[str] = field(default_factory=list)
    error_message: Optional[str] = None


@dataclass
class PriceValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class PriceResultComparison:
    better: PriceCalculationResult
    worse: PriceCalculationResult
    difference: float
    percentage_difference: float


def _is_positive(value) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value) and value > 0


def _failed(message: str, flag: str) -> PriceCalculationResult:
    return PriceCalculationResult(
        price_per_canonical=0.0,
        success=False,
        confidence=0.0,
        flags=[flag],
        error_message=message,
    )


def _canonical_amount(offer: Offer, item: InventoryItem) -> tuple[Optional[float], Optional[str]]:
    conversion = validate_and_convert(offer.amount, offer.amount_unit, item.canonical_dimension)
    if not conversion.is_valid or not conversion.canonical_amount:
        return None, f"Unit conversion failed: {conversion.error_message or 'zero amount'}"
    return conversion.canonical_amount * (item.equivalence_factor or 1.0), None


def _quality_flags(offer: Offer, flags: list[str]) -> list[str]:
    if offer.quality_rating and offer.quality_rating >= 4:
        flags.append("high-quality")
    return flags


def validate_price_calculation_inputs(
    offer: Offer,
    item: InventoryItem,
    options: Optional[PriceCalculationOptions] = None,
) -> PriceValidationResult:
    """Check an offer and item carry what a price calculation needs."""
    options = options or PriceCalculationOptions()
    errors: list[str] = []
    warnings: list[str] = []

    if not _is_positive(offer.total_price):
        errors.append("Offer total price must be a positive finite number")
    if not _is_positive(offer.amount):
        errors.append("Offer amount must be a positive finite number")
    if not offer.amount_unit or not offer.amount_unit.strip():
        errors.append("Offer amount unit is required")
    if not item.canonical_dimension:
        errors.append("Inventory item canonical dimension is required")

    if offer.amount_unit and item.canonical_dimension and _is_positive(offer.amount):
        _, conversion_error = _canonical_amount(offer, item)
        if conversion_error:
            errors.append(conversion_error)

    if options.include_shipping and offer.shipping_cost is not None:
        if not math.isfinite(offer.shipping_cost) or offer.shipping_cost < 0:
            warnings.append("Shipping cost is not a valid positive number")
    if options.include_tax and offer.tax_rate is not None:
        if not math.isfinite(offer.tax_rate) or offer.tax_rate < 0:
            warnings.append("Tax rate is not a valid positive number")
    if not _is_positive(options.currency_rate):
        errors.append("Currency rate must be a positive finite number")

    return PriceValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def calculate_price_per_canonical_excluding(
    offer: Offer,
    item: InventoryItem,
    options: Optional[PriceCalculationOptions] = None,
) -> PriceCalculationResult:
    """Price per canonical unit from the bare total price, no shipping or tax."""
    options = options or PriceCalculationOptions()
    validation = validate_price_calculation_inputs(offer, item, options)
    if not validation.is_valid:
        return _failed("; ".join(validation.errors), "validation-failed")

    canonical_amount, error = _canonical_amount(offer, item)
    if error:
        return _failed(error, "conversion-failed")

    price = offer.total_price / canonical_amount * options.currency_rate

    confidence = 1.0
    flags = []
    if not offer.shipping_included:
        flags.append("shipping-excluded")
    if not offer.is_tax_included:
        flags.append("tax-excluded")
    if offer.shipping_cost is None:
        confidence -= 0.1
    if offer.tax_rate is None:
        confidence -= 0.1

    return PriceCalculationResult(
        price_per_canonical=price,
        success=True,
        confidence=max(0.0, confidence),
        breakdown=PriceBreakdown(
            base_price=offer.total_price,
            total_cost=offer.total_price,
            canonical_amount=canonical_amount,
            price_per_canonical=price,
        ),
        flags=_quality_flags(offer, flags),
    )


def calculate_price_per_canonical_including(
    offer: Offer,
    item: InventoryItem,
    options: Optional[PriceCalculationOptions] = None,
) -> PriceCalculationResult:
    """Price per canonical unit with shipping and tax added where not already included."""
    options = options or PriceCalculationOptions()
    validation = validate_price_calculation_inputs(offer, item, options)
    if not validation.is_valid:
        return _failed("; ".join(validation.errors), "validation-failed")

    canonical_amount, error = _canonical_amount(offer, item)
    if error:
        return _failed(error, "conversion-failed")

    shipping_cost = 0.0
    if options.include_shipping and not offer.shipping_included and offer.shipping_cost is not None:
        shipping_cost = offer.shipping_cost

    tax_cost = 0.0
    if options.include_tax and not offer.is_tax_included and offer.tax_rate is not None:
        tax_cost = offer.total_price * offer.tax_rate

    total_cost = offer.total_price + shipping_cost + tax_cost
    price = total_cost / canonical_amount * options.currency_rate

    confidence = 1.0
    flags = []
    if offer.shipping_included:
        flags.append("shipping-included")
    if offer.is_tax_included:
        flags.append("tax-included")
    if offer.shipping_cost is None and not offer.shipping_included:
        confidence -= 0.2
        flags.append("shipping-unknown")
    if offer.tax_rate is None and not offer.is_tax_included:
        confidence -= 0.2
        flags.append("tax-unknown")

    return PriceCalculationResult(
        price_per_canonical=price,
        success=True,
        confidence=max(0.0, confidence),
        breakdown=PriceBreakdown(
            base_price=offer.total_price,
            shipping_cost=shipping_cost,
            tax_cost=tax_cost,
            total_cost=total_cost,
            canonical_amount=canonical_amount,
            price_per_canonical=price,
        ),
        flags=_quality_flags(offer, flags),
    )


def calculate_price_per_canonical_effective(
    offer: Offer,
    item: InventoryItem,
    options: Optional[PriceCalculationOptions] = None,
) -> PriceCalculationResult:
    """Use the offer's precomputed effective price, recomputing when it is missing."""
    options = options or PriceCalculationOptions()
    validation = validate_price_calculation_inputs(offer, item, options)
    if not validation.is_valid:
        return _failed("; ".join(validation.errors), "validation-failed")

    if offer.effective_price_per_canonical is None or not options.use_effective_price:
        return calculate_price_per_canonical_including(offer, item, options)

    price = offer.effective_price_per_canonical * options.currency_rate
    shipping_cost = 0.0 if offer.shipping_included else (offer.shipping_cost or 0.0)
    tax_cost = 0.0 if offer.is_tax_included else offer.total_price * (offer.tax_rate or 0.0)

    flags = []
    if offer.shipping_included:
        flags.append("shipping-included")
    if offer.is_tax_included:
        flags.append("tax-included")
    _quality_flags(offer, flags)
    flags.append("effective-price")

    return PriceCalculationResult(
        price_per_canonical=price,
        success=True,
        confidence=0.9,
        breakdown=PriceBreakdown(
            base_price=offer.total_price,
            shipping_cost=shipping_cost,
            tax_cost=tax_cost,
            total_cost=offer.total_price + shipping_cost + tax_cost,
            canonical_amount=offer.amount_canonical,
            price_per_canonical=price,
        ),
        flags=flags,
    )


def calculate_price_per_canonical(
    offer: Offer,
    item: InventoryItem,
    options: Optional[PriceCalculationOptions] = None,
) -> PriceCalculationResult:
    """
    Calculate an offer's price per canonical unit.

    Chooses the effective, including or excluding computation from the
    options. This is the entry point the comparison engine uses.
    """
    options = options or PriceCalculationOptions()
    if options.use_effective_price and offer.effective_price_per_canonical is not None:
        return calculate_price_per_canonical_effective(offer, item, options)
    if options.include_shipping or options.include_tax:
        return calculate_price_per_canonical_including(offer, item, options)
    return calculate_price_per_canonical_excluding(offer, item, options)


def calculate_prices_for_offers(
    offers: list[Offer],
    item: InventoryItem,
    options: Optional[PriceCalculationOptions] = None,
) -> dict[str, PriceCalculationResult]:
    """Calculate prices for several offers, keyed by offer id."""
    return {offer.id: calculate_price_per_canonical(offer, item, options) for offer in offers}


def filter_offers_by_calculation(
    offers: list[Offer],
    item: InventoryItem,
    options: Optional[PriceCalculationOptions] = None,
) -> tuple[list[Offer], list[tuple[Offer, PriceCalculationResult]]]:
    """Split offers into those with a confident, successful calculation and the rest."""
    options = options or PriceCalculationOptions()
    valid: list[Offer] = []
    invalid: list[tuple[Offer, PriceCalculationResult]] = []

    for offer in offers:
        result = calculate_price_per_canonical(offer, item, options)
        if result.success and result.confidence >= options.min_confidence:
            valid.append(offer)
        else:
            invalid.append((offer, result))

    if invalid:
        logger.debug(f"Excluded {len(invalid)} of {len(offers)} offers for item {item.id}")
    return valid, invalid


def compare_price_results(
    first: PriceCalculationResult,
    second: PriceCalculationResult,
) -> PriceResultComparison:
    """Compare two calculations; percentage is inf when the cheaper price is 0."""
    if first.price_per_canonical < second.price_per_canonical:
        better, worse = first, second
    else:
        better, worse = second, first
    difference = abs(first.price_per_canonical - second.price_per_canonical)
    cheaper = better.price_per_canonical
    if cheaper == 0:
        percentage = math.inf if difference else 0.0
    else:
        percentage = difference / cheaper * 100
    return PriceResultComparison(better, worse, difference, percentage)


def format_price_result(result: PriceCalculationResult) -> str:
    if not result.success:
        return f"Error: {result.error_message}"
    flags = f" ({', '.join(result.flags)})" if result.flags else ""
    return f"{result.price_per_canonical:.4f} (confidence: {result.confidence * 100:.1f}%{flags})"
