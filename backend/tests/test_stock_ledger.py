# Overview: Pytest coverage for the stock ledger (stock-in, stock-out, movement history).

"""
Stock ledger tests.

Every stock mutation writes one StockMovement whose snapshots satisfy
stock_after == stock_before + quantity_base, with quantity_base in the
product's base unit.
"""

import pytest

from retailpos.errors import InsufficientStock, ProductNotFound, UnknownUnit
from retailpos.extensions import db
from retailpos.models import StockMovement
from retailpos.services import products_service, stock_service
from retailpos.validation import ConflictError, ValidationError


def _movements(product_id):
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.id.asc())
        .all()
    )


class TestStockIn:
    def test_receive_in_converted_unit(self, rice, admin_a):
        product, movement = stock_service.stock_in(
            tenant_id=rice.tenant_id,
            product_id=rice.id,
            quantity=500,
            unit="g",
            reference="PO-1",
            user_id=admin_a.id,
        )

        assert product.stock_quantity == pytest.approx(100.5)
        assert movement.type == "purchase"
        assert movement.quantity == 500
        assert movement.unit == "g"
        assert movement.quantity_base == pytest.approx(0.5)
        assert movement.stock_before == pytest.approx(100)
        assert movement.stock_after == pytest.approx(100.5)
        assert movement.reference == "PO-1"
        assert movement.created_by_user_id == admin_a.id

    def test_default_unit_cost_follows_unit(self, rice):
        _, movement = stock_service.stock_in(
            tenant_id=rice.tenant_id, product_id=rice.id, quantity=1000, unit="g"
        )
        # cost 1.8 / kg -> 0.0018 / g
        assert movement.unit_cost == pytest.approx(0.0018)
        assert movement.total_cost == pytest.approx(1.8)

    def test_rejects_non_positive_quantity(self, rice):
        with pytest.raises(ValidationError):
            stock_service.stock_in(tenant_id=rice.tenant_id, product_id=rice.id, quantity=0)
        assert _movements(rice.id) == []

    def test_unknown_unit_writes_nothing(self, rice):
        with pytest.raises(UnknownUnit):
            stock_service.stock_in(tenant_id=rice.tenant_id, product_id=rice.id, quantity=1, unit="box")
        db.session.refresh(rice)
        assert rice.stock_quantity == 100
        assert _movements(rice.id) == []

    def test_foreign_tenant_product_not_found(self, tenant_a, product_b):
        with pytest.raises(ProductNotFound):
            stock_service.stock_in(tenant_id=tenant_a.id, product_id=product_b.id, quantity=1)
        db.session.refresh(product_b)
        assert product_b.stock_quantity == 10


class TestStockOut:
    def test_adjustment_with_reason(self, water):
        product, movement = stock_service.stock_out(
            tenant_id=water.tenant_id,
            product_id=water.id,
            quantity=1,
            unit="pack",
            reason="damage",
        )

        assert product.stock_quantity == 54
        assert movement.type == "adjustment"
        assert movement.reason == "damage"
        assert movement.quantity == -1
        assert movement.quantity_base == -6
        assert movement.stock_after == movement.stock_before + movement.quantity_base

    def test_strict_overdraw_rejected(self, tenant_a):
        from conftest import make_product

        product = make_product(tenant_a, sku="TEN", stock_quantity=10.0, min_stock=5.0)
        with pytest.raises(InsufficientStock):
            stock_service.stock_out(tenant_id=tenant_a.id, product_id=product.id, quantity=15)

        db.session.refresh(product)
        assert product.stock_quantity == 10
        assert _movements(product.id) == []

    def test_clamped_overdraw_records_shortfall(self, app, monkeypatch, tenant_a):
        from conftest import make_product

        monkeypatch.setitem(app.config, "STOCK_CLAMP_ON_OVERDRAW", True)
        product = make_product(tenant_a, sku="TEN", stock_quantity=10.0, min_stock=5.0)

        product, movement = stock_service.stock_out(
            tenant_id=tenant_a.id, product_id=product.id, quantity=15, reason="loss"
        )

        assert product.stock_quantity == 0
        assert product.is_out_of_stock is True
        assert movement.shortfall_base == pytest.approx(5)
        assert movement.quantity_base == pytest.approx(-10)
        assert movement.stock_after == 0

    def test_invalid_reason(self, water):
        with pytest.raises(ValidationError):
            stock_service.stock_out(
                tenant_id=water.tenant_id, product_id=water.id, quantity=1, reason="gift"
            )


class TestMovementHistory:
    def test_ledger_snapshots_chain(self, rice):
        stock_service.stock_in(tenant_id=rice.tenant_id, product_id=rice.id, quantity=2)
        stock_service.stock_out(tenant_id=rice.tenant_id, product_id=rice.id, quantity=750, unit="g")
        stock_service.stock_in(tenant_id=rice.tenant_id, product_id=rice.id, quantity=250, unit="g")

        movements = _movements(rice.id)
        assert len(movements) == 3
        for movement in movements:
            assert movement.stock_after == pytest.approx(movement.stock_before + movement.quantity_base)
        for previous, current in zip(movements, movements[1:]):
            assert current.stock_before == pytest.approx(previous.stock_after)

        db.session.refresh(rice)
        assert rice.stock_quantity == pytest.approx(movements[-1].stock_after)
        assert rice.stock_quantity == pytest.approx(101.5)

    def test_list_filters_and_orders(self, rice, water):
        stock_service.stock_in(tenant_id=rice.tenant_id, product_id=rice.id, quantity=1)
        stock_service.stock_out(tenant_id=water.tenant_id, product_id=water.id, quantity=1)
        stock_service.stock_in(tenant_id=water.tenant_id, product_id=water.id, quantity=2)

        all_movements = stock_service.list_movements(tenant_id=rice.tenant_id)
        assert len(all_movements) == 3
        assert all_movements[0].product_id == water.id
        assert all_movements[0].type == "purchase"

        water_only = stock_service.list_movements(tenant_id=rice.tenant_id, product_id=water.id)
        assert {m.product_id for m in water_only} == {water.id}

        purchases = stock_service.list_movements(tenant_id=rice.tenant_id, movement_type="purchase")
        assert len(purchases) == 2

    def test_list_is_tenant_scoped(self, rice, product_b):
        stock_service.stock_in(tenant_id=product_b.tenant_id, product_id=product_b.id, quantity=1)
        assert stock_service.list_movements(tenant_id=rice.tenant_id) == []

    def test_opening_stock_recorded_on_create(self, tenant_a, admin_a):
        product = products_service.create_product(
            tenant_id=tenant_a.id,
            payload={"name": "Flour", "sku": "flour-1", "price": 1.2, "base_unit": "kg", "stock_quantity": 25},
            user_id=admin_a.id,
        )

        assert product.sku == "FLOUR-1"
        assert product.stock_quantity == 25
        movements = _movements(product.id)
        assert len(movements) == 1
        assert movements[0].type == "adjustment"
        assert movements[0].stock_before == 0
        assert movements[0].stock_after == 25


class TestBaseUnitChange:
    """The base unit anchors every stored quantity, so it is frozen once stock exists."""

    def test_rejected_while_stocked(self, rice):
        with pytest.raises(ConflictError):
            products_service.update_product(
                tenant_id=rice.tenant_id, product_id=rice.id, payload={"base_unit": "g"}
            )

        db.session.refresh(rice)
        assert rice.base_unit == "kg"
        assert rice.stock_quantity == 100
        assert _movements(rice.id) == []

    def test_rejected_after_movements_even_at_zero_stock(self, tenant_a):
        from conftest import make_product

        product = make_product(tenant_a, sku="EMPTY", stock_quantity=2.0, min_stock=0.0)
        stock_service.stock_out(tenant_id=tenant_a.id, product_id=product.id, quantity=2, reason="damage")

        with pytest.raises(ConflictError):
            products_service.update_product(
                tenant_id=tenant_a.id, product_id=product.id, payload={"base_unit": "box"}
            )
        db.session.refresh(product)
        assert product.base_unit == "piece"

    def test_allowed_without_stock_history(self, tenant_a):
        from conftest import make_product

        product = make_product(tenant_a, sku="NEW", stock_quantity=0.0)
        product = products_service.update_product(
            tenant_id=tenant_a.id, product_id=product.id, payload={"base_unit": "box"}
        )
        assert product.base_unit == "box"
