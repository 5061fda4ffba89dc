# backend/retailpos/services/products_service.py
"""
Products Service with Multi-Tenant Support

MULTI-TENANT: All product operations are tenant-scoped.
- SKUs are stored upper-cased and are unique per tenant
- product ids of other tenants behave exactly like missing ids

UNITS: unit_conversions and price_by_unit are replaced wholesale when present
in a payload. Conversion factors must be > 0 and every priced unit must be
the base unit or a converted unit.

STOCK: stock_quantity can be set when a product is created (recorded as an
opening-stock movement); afterwards it only changes through stock-in,
stock-out, sales and refunds.
The base unit is fixed once a product holds stock or has any movement.
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import ProductNotFound
from ..models import Product, ProductUnitConversion, ProductUnitPrice, StockMovement, Tenant
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_product,
    parse_unit_conversions,
    parse_unit_prices,
    validate_payload,
)
from .pagination import paginate
from .stock_service import record_movement
from .tenant_service import scoped_get


PRODUCT_MUTABLE_FIELDS = {
    "name", "name_ar", "description", "sku", "barcode", "category", "brand",
    "base_unit", "unit_type", "price", "cost", "taxable", "tax_rate",
    "discount_type", "discount_value", "discount_start", "discount_end", "discount_is_active",
    "min_stock", "max_stock", "reorder_point", "expiration_date",
    "is_active", "is_featured", "notes",
}

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_MUTABLE_FIELDS | {"stock_quantity"},
    required_on_create={"name", "sku", "price"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_MUTABLE_FIELDS,
)

# Keys handled outside of column validation
UNIT_TABLE_KEYS = ("unit_conversions", "price_by_unit")


def _split_payload(payload: dict | None) -> tuple[dict, dict]:
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    columns = {k: v for k, v in payload.items() if k not in UNIT_TABLE_KEYS}
    tables = {k: payload[k] for k in UNIT_TABLE_KEYS if k in payload}
    return columns, tables


def _require_unique_sku(tenant_id: int, sku: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Product.id).filter(Product.tenant_id == tenant_id, Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError("SKU already exists for this tenant.")


def _apply_unit_tables(product: Product, tables: dict) -> None:
    """
    Replace conversion/price tables from the payload, then check the
    resulting tables against the (possibly new) base unit.
    """
    if "unit_conversions" in tables:
        conversions = parse_unit_conversions(tables["unit_conversions"], base_unit=product.base_unit)
        product.unit_conversions = [
            ProductUnitConversion(unit=unit, conversion_factor=factor) for unit, factor in conversions
        ]
    elif any(c.unit == product.base_unit for c in product.unit_conversions):
        raise ValidationError(f"{product.base_unit} is the base unit and cannot have a conversion")

    allowed = product.allowed_units
    if "price_by_unit" in tables:
        prices = parse_unit_prices(tables["price_by_unit"], allowed_units=allowed)
        product.unit_prices = [ProductUnitPrice(unit=unit, price=price) for unit, price in prices]
    else:
        for unit_price in product.unit_prices:
            if unit_price.unit not in allowed:
                raise ValidationError(f"price_by_unit references unknown unit: {unit_price.unit}")


def _apply_patch(product: Product, patch: dict) -> None:
    for key, value in patch.items():
        if key in PRODUCT_MUTABLE_FIELDS:
            setattr(product, key, value)


def list_products(
    *,
    tenant_id: int,
    page: int | None = None,
    per_page: int | None = None,
    search: str | None = None,
    category: str | None = None,
    is_active: bool | None = None,
) -> dict:
    """Tenant-scoped, paginated product listing ordered by name."""
    query = db.session.query(Product).filter(Product.tenant_id == tenant_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Product.name.ilike(pattern),
            Product.name_ar.ilike(pattern),
            Product.sku.ilike(pattern),
            Product.barcode.ilike(pattern),
        ))
    if category:
        query = query.filter(Product.category == category)
    if is_active is not None:
        query = query.filter(Product.is_active.is_(is_active))

    query = query.order_by(Product.name.asc(), Product.id.asc())
    return paginate(query, page=page, per_page=per_page)


def list_low_stock(*, tenant_id: int) -> list[Product]:
    return (
        db.session.query(Product)
        .filter(
            Product.tenant_id == tenant_id,
            Product.is_active.is_(True),
            Product.is_low_stock.is_(True),
        )
        .order_by(Product.stock_quantity.asc(), Product.name.asc())
        .all()
    )


def list_out_of_stock(*, tenant_id: int) -> list[Product]:
    return (
        db.session.query(Product)
        .filter(
            Product.tenant_id == tenant_id,
            Product.is_active.is_(True),
            Product.is_out_of_stock.is_(True),
        )
        .order_by(Product.name.asc())
        .all()
    )


def get_product(*, tenant_id: int, product_id: int) -> Product:
    product = scoped_get(Product, product_id, tenant_id)
    if product is None:
        raise ProductNotFound("Product not found", details={"product_id": product_id})
    return product


def create_product(*, tenant_id: int, payload: dict, user_id: int | None = None) -> Product:
    """
    Create a product from a raw JSON payload.

    Defaults: tax_rate from the tenant, min_stock from DEFAULT_MIN_STOCK.

    Raises:
        ValidationError: invalid fields or unit tables
        ConflictError: SKU already exists for this tenant
    """
    columns, tables = _split_payload(payload)
    patch = validate_payload(model=Product, payload=columns, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_rules_product(patch)

    patch["sku"] = patch["sku"].upper()
    _require_unique_sku(tenant_id, patch["sku"])

    tenant = db.session.get(Tenant, tenant_id)
    opening_stock = patch.pop("stock_quantity", None) or 0.0

    product = Product(
        tenant_id=tenant_id,
        base_unit="piece",
        unit_type="piece",
        cost=0.0,
        taxable=True,
        tax_rate=tenant.default_tax_rate if tenant else current_app.config.get("DEFAULT_TAX_RATE", 19.0),
        min_stock=current_app.config.get("DEFAULT_MIN_STOCK", 10.0),
        max_stock=1000.0,
        reorder_point=20.0,
        stock_quantity=0.0,
        total_sold=0.0,
        total_revenue=0.0,
        created_by_user_id=user_id,
        updated_by_user_id=user_id,
    )
    _apply_patch(product, patch)
    _apply_unit_tables(product, tables)
    product.refresh_stock_flags()

    db.session.add(product)
    db.session.flush()

    if opening_stock > 0:
        change = product.add_stock(opening_stock, product.base_unit)
        record_movement(
            product=product,
            change=change,
            movement_type="adjustment",
            reason="other",
            quantity=opening_stock,
            unit=product.base_unit,
            unit_cost=product.cost or 0.0,
            notes="Opening stock",
            user_id=user_id,
        )

    db.session.commit()
    current_app.logger.info("Created product %s sku=%s tenant=%s", product.id, product.sku, tenant_id)
    return product


def _require_no_stock_history(product: Product) -> None:
    has_movements = (
        db.session.query(StockMovement.id).filter(StockMovement.product_id == product.id).first()
        is not None
    )
    if (product.stock_quantity or 0) > 0 or has_movements:
        raise ConflictError(
            f"base_unit of {product.sku} cannot change once it has stock or stock movements"
        )


def update_product(*, tenant_id: int, product_id: int, payload: dict, user_id: int | None = None) -> Product:
    columns, tables = _split_payload(payload)
    if "stock_quantity" in columns:
        raise ValidationError("stock_quantity cannot be edited; use stock-in or stock-out")

    patch = validate_payload(model=Product, payload=columns, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)

    product = get_product(tenant_id=tenant_id, product_id=product_id)

    if "sku" in patch:
        patch["sku"] = patch["sku"].upper()
        if patch["sku"] != product.sku:
            _require_unique_sku(tenant_id, patch["sku"], exclude_id=product.id)

    if "base_unit" in patch and patch["base_unit"] != product.base_unit:
        _require_no_stock_history(product)

    if "discount_type" not in patch and patch.get("discount_value", 0) and product.discount_type == "percentage":
        if patch["discount_value"] > 100:
            raise ValidationError("percentage discount_value cannot exceed 100")

    try:
        _apply_patch(product, patch)
        _apply_unit_tables(product, tables)
    except ValidationError:
        db.session.rollback()
        raise

    product.updated_by_user_id = user_id
    product.refresh_stock_flags()
    db.session.commit()
    return product


def delete_product(*, tenant_id: int, product_id: int) -> None:
    """
    Hard-delete a product.

    Sale items and stock movements keep their name/sku snapshots; their
    product_id is set to NULL by the foreign key.
    """
    product = get_product(tenant_id=tenant_id, product_id=product_id)
    db.session.delete(product)
    db.session.commit()
    current_app.logger.info("Deleted product %s tenant=%s", product_id, tenant_id)
