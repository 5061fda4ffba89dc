# Overview: Pytest coverage for product unit conversion, pricing and stock mutation.

"""
Product model tests.

Covers:
- Base-unit conversion (to_base_units / from_base_units) and UnknownUnit
- calculate_price with conversions, fixed unit prices and discount windows
- deduct_stock / add_stock in strict and clamped modes, with stock flags
- Loyalty tier thresholds
"""

from datetime import timedelta

import pytest

from retailpos.errors import InsufficientStock, UnknownUnit
from retailpos.models.customers import loyalty_tier_for_points
from retailpos.time_utils import utcnow


class TestUnitConversion:
    """Quantities convert to the base unit by multiplying the factor."""

    def test_base_unit_is_identity(self, rice):
        assert rice.to_base_units(3, "kg") == 3
        assert rice.from_base_units(3, "kg") == 3

    def test_grams_to_kilograms(self, rice):
        assert rice.to_base_units(500, "g") == pytest.approx(0.5)
        assert rice.from_base_units(0.25, "g") == pytest.approx(250)

    @pytest.mark.parametrize("quantity", [1, 250, 1234.5, 0.001])
    def test_round_trip(self, rice, quantity):
        base = rice.to_base_units(quantity, "g")
        assert rice.from_base_units(base, "g") == pytest.approx(quantity)

    def test_unknown_unit(self, rice):
        with pytest.raises(UnknownUnit) as exc:
            rice.to_base_units(1, "liter")
        assert exc.value.code == "UNKNOWN_UNIT"
        assert exc.value.details["unit"] == "liter"

    def test_allowed_units(self, water):
        assert water.allowed_units == ["piece", "pack"]


class TestPricing:
    def test_price_in_converted_unit(self, rice):
        # 500 g at 2.5 / kg
        assert rice.calculate_price(500, "g") == pytest.approx(1.25)

    def test_product_discount_applies_to_base_pricing(self, water):
        # 6 pieces at 0.9, 10% off
        assert water.calculate_price(6, "piece") == pytest.approx(4.86)

    def test_unit_price_override_skips_discount(self, water):
        assert water.calculate_price(1, "pack") == pytest.approx(4.8)
        assert water.calculate_price(2, "pack") == pytest.approx(9.6)

    def test_expired_discount_window(self, water, db_session):
        water.discount_end = utcnow() - timedelta(days=1)
        db_session.commit()
        assert water.calculate_price(6, "piece") == pytest.approx(5.4)

    def test_future_discount_window(self, water, db_session):
        water.discount_start = utcnow() + timedelta(days=1)
        db_session.commit()
        assert water.discount_is_current() is False
        assert water.final_price == pytest.approx(0.9)

    def test_fixed_discount(self, rice, db_session):
        rice.discount_type = "fixed"
        rice.discount_value = 0.5
        rice.discount_is_active = True
        db_session.commit()
        assert rice.calculate_price(2, "kg") == pytest.approx(4.5)

    def test_unknown_unit_has_no_price(self, water):
        with pytest.raises(UnknownUnit):
            water.calculate_price(1, "crate")


class TestStockMutation:
    """Stock is kept in base units; flags follow every mutation."""

    def test_deduct_into_low_stock(self, tenant_a):
        from conftest import make_product

        product = make_product(tenant_a, sku="LOW", stock_quantity=10.0, min_stock=5.0)
        change = product.deduct_stock(8, "piece")

        assert product.stock_quantity == pytest.approx(2)
        assert product.is_low_stock is True
        assert product.is_out_of_stock is False
        assert change.before == 10
        assert change.after == pytest.approx(2)
        assert change.delta_base == pytest.approx(-8)

    def test_strict_overdraw_raises_without_mutation(self, tenant_a):
        from conftest import make_product

        product = make_product(tenant_a, sku="STRICT", stock_quantity=10.0)
        with pytest.raises(InsufficientStock) as exc:
            product.deduct_stock(15, "piece")

        assert product.stock_quantity == 10
        assert exc.value.details["requested_base_quantity"] == 15
        assert exc.value.details["available_base_quantity"] == 10

    def test_clamped_overdraw_reports_shortfall(self, tenant_a):
        from conftest import make_product

        product = make_product(tenant_a, sku="CLAMP", stock_quantity=10.0)
        change = product.deduct_stock(15, "piece", clamp=True)

        assert product.stock_quantity == 0
        assert product.is_out_of_stock is True
        assert product.is_low_stock is False
        assert change.shortfall_base == pytest.approx(5)
        assert change.delta_base == pytest.approx(-10)

    def test_float_slack_allows_exact_depletion(self, rice, db_session):
        rice.stock_quantity = 0.3
        db_session.commit()
        for _ in range(3):
            rice.deduct_stock(100, "g")
        assert rice.stock_quantity == 0
        assert rice.is_out_of_stock is True

    def test_add_stock_in_converted_unit(self, water):
        change = water.add_stock(2, "pack")
        assert water.stock_quantity == 72
        assert change.delta_base == 12
        assert water.last_restock_date is not None

    def test_add_stock_clears_out_of_stock(self, tenant_a):
        from conftest import make_product

        product = make_product(tenant_a, sku="EMPTY", stock_quantity=0.0, min_stock=5.0)
        assert product.is_out_of_stock is True

        product.add_stock(3, "piece")
        assert product.is_out_of_stock is False
        assert product.is_low_stock is True

    def test_has_stock_converts_units(self, water):
        assert water.has_stock(10, "pack")
        assert not water.has_stock(11, "pack")


class TestLoyaltyTiers:
    @pytest.mark.parametrize(
        "points,tier",
        [
            (0, "bronze"),
            (1999, "bronze"),
            (2000, "silver"),
            (4999, "silver"),
            (5000, "gold"),
            (10000, "platinum"),
            (25000, "platinum"),
        ],
    )
    def test_thresholds(self, points, tier):
        assert loyalty_tier_for_points(points) == tier
