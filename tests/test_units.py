"""Tests for unit conversion and offer metrics."""

import pytest

from pricewise.compare.errors import InvalidDataError
from pricewise.domain import InventoryItem, Offer, compute_offer_metrics
from pricewise.units import (
    are_units_compatible,
    convert_amount,
    format_amount,
    get_canonical_unit,
    get_conversion_factor,
    get_supported_units,
    get_unit_dimension,
    is_supported_unit,
    validate_and_convert,
)


def test_canonical_units():
    assert get_canonical_unit("mass") == "g"
    assert get_canonical_unit("volume") == "ml"
    assert get_canonical_unit("count") == "unit"
    with pytest.raises(ValueError):
        get_canonical_unit("temperature")


def test_unit_lookup_ignores_case_and_spacing():
    assert is_supported_unit("KG")
    assert get_unit_dimension(" Fl  Oz ") == "volume"
    assert not is_supported_unit("furlong")


def test_conversions():
    assert convert_amount(2, "kg", "g") == pytest.approx(2000)
    assert convert_amount(500, "ml", "l") == pytest.approx(0.5)
    assert get_conversion_factor("lb", "lb") == 1.0
    assert get_conversion_factor("kg", "ml") is None
    assert convert_amount(1, "kg", "ml") is None
    assert are_units_compatible("oz", "kg")
    assert not are_units_compatible("oz", "fl oz")


def test_validate_and_convert():
    ok = validate_and_convert(1.5, "kg", "mass")
    wrong_dimension = validate_and_convert(1, "l", "mass")
    unknown = validate_and_convert(1, "furlong", "length")
    negative = validate_and_convert(-1, "kg", "mass")

    assert ok.is_valid and ok.canonical_amount == pytest.approx(1500) and ok.canonical_unit == "g"
    assert wrong_dimension.error_message == "Unit l (volume) does not match expected dimension mass"
    assert unknown.error_message == "Unsupported unit: furlong"
    assert negative.error_message == "Amount must be a positive finite number"


def test_supported_units_and_formatting():
    assert "kg" in get_supported_units("mass")
    assert get_supported_units("temperature") == []
    assert format_amount(1.234, "kg") == "1.23 kg"


class TestOfferMetrics:
    """Tests for derived per-canonical prices."""

    def test_shipping_and_tax(self, item):
        metrics = compute_offer_metrics(
            10.0, 500, "g", item, shipping_cost=2.0, is_tax_included=False, tax_rate=0.2
        )

        assert metrics.amount_canonical == 500
        assert metrics.price_per_canonical_excl_shipping == pytest.approx(0.02)
        assert metrics.price_per_canonical_incl_shipping == pytest.approx(0.024)
        assert metrics.effective_price_per_canonical == pytest.approx(0.0288)

    def test_included_shipping_is_not_added_twice(self, item):
        metrics = compute_offer_metrics(10.0, 1, "kg", item, shipping_cost=2.0, shipping_included=True)

        assert metrics.price_per_canonical_incl_shipping == pytest.approx(0.01)

    def test_equivalence_factor(self):
        concentrate = InventoryItem(
            id="i", name="Juice concentrate", canonical_dimension="volume",
            canonical_unit="ml", equivalence_factor=4.0,
        )

        metrics = compute_offer_metrics(8.0, 1, "l", concentrate)

        assert metrics.amount_canonical == pytest.approx(4000)
        assert metrics.effective_price_per_canonical == pytest.approx(0.002)

    @pytest.mark.parametrize("amount,unit", [(0, "kg"), (1, "l"), (1, "furlong")])
    def test_invalid_amounts_raise(self, item, amount, unit):
        with pytest.raises(InvalidDataError):
            compute_offer_metrics(10.0, amount, unit, item)

    def test_capture_assigns_id_and_timestamp(self, item):
        offer = Offer.capture(item, "sup-a", 4.0, 2, "lb")

        assert offer.id
        assert offer.observed_at is not None
        assert offer.amount_canonical == pytest.approx(907.184)
        assert offer.is_complete
