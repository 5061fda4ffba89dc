from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..extensions import db
from ..errors import InsufficientStock, UnknownUnit
from ..time_utils import to_utc_z, utcnow


UNIT_TYPES = ("weight", "volume", "piece", "custom")
DISCOUNT_TYPES = ("percentage", "fixed")
STOCK_MOVEMENT_TYPES = ("purchase", "sale", "return", "adjustment", "transfer", "damage", "expiry")

# A fixed price registered for a unit is final: the product discount is not
# applied on top of it. Pricing tiers per unit are negotiated prices.
UNIT_PRICE_OVERRIDES_BYPASS_DISCOUNT = True

# Float slack for base-unit arithmetic (e.g. 3 x 0.1 kg against 0.3 kg on hand)
STOCK_EPSILON = 1e-9


@dataclass(frozen=True)
class StockChange:
    """Result of one stock mutation, in base units."""
    before: float
    after: float
    delta_base: float
    shortfall_base: float = 0.0


class Product(db.Model):
    """
    Product master data with multi-unit pricing and on-hand stock.

    MULTI-TENANT: Products are scoped to tenants via tenant_id.
    SKUs are unique within a tenant.

    UNITS:
    - stock_quantity and price are denominated in base_unit
    - unit_conversions map other units to base units (quantity * factor)
    - price_by_unit optionally fixes the price of one unit outright

    STOCK FLAGS:
    is_out_of_stock / is_low_stock are derived from (stock_quantity, min_stock)
    and recomputed by every stock mutation method.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
        db.Index("ix_products_tenant_name", "tenant_id", "name"),
        db.Index("ix_products_tenant_active", "tenant_id", "is_active"),
        db.Index("ix_products_tenant_barcode", "tenant_id", "barcode"),
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    name_ar = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=True)

    sku = db.Column(db.String(64), nullable=False)
    barcode = db.Column(db.String(64), nullable=True)
    category = db.Column(db.String(128), nullable=True, index=True)
    brand = db.Column(db.String(128), nullable=True)

    # Pricing (base unit)
    base_unit = db.Column(db.String(32), nullable=False, default="piece")
    unit_type = db.Column(db.String(16), nullable=False, default="piece")
    price = db.Column(db.Float, nullable=False)
    cost = db.Column(db.Float, nullable=False, default=0.0)

    # Tax
    taxable = db.Column(db.Boolean, nullable=False, default=True)
    tax_rate = db.Column(db.Float, nullable=False, default=19.0)

    # Product-level discount with optional validity window
    discount_type = db.Column(db.String(16), nullable=True)
    discount_value = db.Column(db.Float, nullable=True)
    discount_start = db.Column(db.DateTime(timezone=True), nullable=True)
    discount_end = db.Column(db.DateTime(timezone=True), nullable=True)
    discount_is_active = db.Column(db.Boolean, nullable=False, default=False)

    # Inventory (base units)
    stock_quantity = db.Column(db.Float, nullable=False, default=0.0)
    min_stock = db.Column(db.Float, nullable=False, default=10.0)
    max_stock = db.Column(db.Float, nullable=False, default=1000.0)
    reorder_point = db.Column(db.Float, nullable=False, default=20.0)
    is_low_stock = db.Column(db.Boolean, nullable=False, default=False, index=True)
    is_out_of_stock = db.Column(db.Boolean, nullable=False, default=True, index=True)

    expiration_date = db.Column(db.DateTime(timezone=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_featured = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text, nullable=True)

    # Analytics
    total_sold = db.Column(db.Float, nullable=False, default=0.0)
    total_revenue = db.Column(db.Float, nullable=False, default=0.0)
    last_sold_date = db.Column(db.DateTime(timezone=True), nullable=True)
    last_restock_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    tenant = db.relationship("Tenant", backref=db.backref("products", lazy=True))
    unit_conversions = db.relationship(
        "ProductUnitConversion",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductUnitConversion.unit",
    )
    unit_prices = db.relationship(
        "ProductUnitPrice",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductUnitPrice.unit",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} tenant_id={self.tenant_id}>"

    # -- Units --

    def _conversion_factor(self, unit: str) -> float:
        for conversion in self.unit_conversions:
            if conversion.unit == unit:
                return conversion.conversion_factor
        raise UnknownUnit(
            f"No conversion found for unit: {unit}",
            details={"product_id": self.id, "unit": unit, "base_unit": self.base_unit},
        )

    def to_base_units(self, quantity: float, unit: str) -> float:
        if unit == self.base_unit:
            return quantity
        return quantity * self._conversion_factor(unit)

    def from_base_units(self, quantity: float, unit: str) -> float:
        if unit == self.base_unit:
            return quantity
        return quantity / self._conversion_factor(unit)

    @property
    def allowed_units(self) -> list[str]:
        return [self.base_unit] + [c.unit for c in self.unit_conversions]

    # -- Pricing --

    def unit_price_for(self, unit: str) -> float | None:
        for unit_price in self.unit_prices:
            if unit_price.unit == unit:
                return unit_price.price
        return None

    def discount_is_current(self, at: datetime | None = None) -> bool:
        if not self.discount_is_active or not self.discount_type or not self.discount_value:
            return False
        at = at or utcnow()
        if self.discount_start is not None and at < self.discount_start:
            return False
        if self.discount_end is not None and at > self.discount_end:
            return False
        return True

    def apply_discount(self, amount: float, at: datetime | None = None) -> float:
        """Subtract the current product discount from amount (no floor at zero)."""
        if not self.discount_is_current(at):
            return amount
        if self.discount_type == "percentage":
            return amount - (amount * self.discount_value) / 100
        return amount - self.discount_value

    def calculate_price(self, quantity: float, unit: str, at: datetime | None = None) -> float:
        """
        Price of `quantity` of `unit`.

        A registered unit price wins outright (see
        UNIT_PRICE_OVERRIDES_BYPASS_DISCOUNT); otherwise the quantity is
        converted to base units, priced at `price` and discounted.
        """
        override = self.unit_price_for(unit)
        if override is not None:
            amount = override * quantity
            if UNIT_PRICE_OVERRIDES_BYPASS_DISCOUNT:
                return amount
            return self.apply_discount(amount, at)

        amount = self.to_base_units(quantity, unit) * self.price
        return self.apply_discount(amount, at)

    @property
    def final_price(self) -> float:
        return self.apply_discount(self.price)

    @property
    def profit_margin(self) -> float:
        if not self.cost:
            return 0.0
        return ((self.price - self.cost) / self.cost) * 100

    # -- Stock --

    def refresh_stock_flags(self) -> None:
        quantity = self.stock_quantity or 0.0
        self.is_out_of_stock = quantity <= 0
        self.is_low_stock = 0 < quantity <= (self.min_stock or 0.0)

    def has_stock(self, quantity: float, unit: str) -> bool:
        required = self.to_base_units(quantity, unit)
        return required <= (self.stock_quantity or 0.0) + STOCK_EPSILON

    def deduct_stock(self, quantity: float, unit: str, *, clamp: bool = False) -> StockChange:
        """
        Remove stock. Strict by default: raises InsufficientStock rather than
        going below zero. With clamp=True the quantity floors at exactly 0
        and the dropped deficit is reported as shortfall_base.
        """
        amount = self.to_base_units(quantity, unit)
        before = self.stock_quantity or 0.0
        after = before - amount
        shortfall = 0.0

        if after < -STOCK_EPSILON:
            if not clamp:
                raise InsufficientStock(
                    f"Insufficient stock for {self.name}",
                    details={
                        "product_id": self.id,
                        "product_name": self.name,
                        "requested_base_quantity": amount,
                        "available_base_quantity": before,
                        "base_unit": self.base_unit,
                    },
                )
            shortfall = -after
        if after < 0:
            after = 0.0

        self.stock_quantity = after
        self.refresh_stock_flags()
        return StockChange(before=before, after=after, delta_base=after - before, shortfall_base=shortfall)

    def add_stock(self, quantity: float, unit: str) -> StockChange:
        amount = self.to_base_units(quantity, unit)
        before = self.stock_quantity or 0.0
        after = before + amount

        self.stock_quantity = after
        self.last_restock_date = utcnow()
        self.refresh_stock_flags()
        return StockChange(before=before, after=after, delta_base=amount)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "name_ar": self.name_ar,
            "description": self.description,
            "sku": self.sku,
            "barcode": self.barcode,
            "category": self.category,
            "brand": self.brand,
            "base_unit": self.base_unit,
            "unit_type": self.unit_type,
            "allowed_units": self.allowed_units,
            "unit_conversions": [c.to_dict() for c in self.unit_conversions],
            "price_by_unit": [p.to_dict() for p in self.unit_prices],
            "price": self.price,
            "final_price": self.final_price,
            "cost": self.cost,
            "profit_margin": self.profit_margin,
            "taxable": self.taxable,
            "tax_rate": self.tax_rate,
            "discount": {
                "type": self.discount_type,
                "value": self.discount_value,
                "start": to_utc_z(self.discount_start),
                "end": to_utc_z(self.discount_end),
                "is_active": self.discount_is_active,
            },
            "stock": {
                "quantity": self.stock_quantity,
                "unit": self.base_unit,
                "min_stock": self.min_stock,
                "max_stock": self.max_stock,
                "reorder_point": self.reorder_point,
            },
            "is_low_stock": self.is_low_stock,
            "is_out_of_stock": self.is_out_of_stock,
            "expiration_date": to_utc_z(self.expiration_date),
            "is_active": self.is_active,
            "is_featured": self.is_featured,
            "notes": self.notes,
            "total_sold": self.total_sold,
            "total_revenue": self.total_revenue,
            "last_sold_date": to_utc_z(self.last_sold_date),
            "last_restock_date": to_utc_z(self.last_restock_date),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductUnitConversion(db.Model):
    """
    One row per non-base unit a product can be sold in.

    Example: base unit kg, unit g -> conversion_factor 0.001 (1 g = 0.001 kg).
    """
    __tablename__ = "product_unit_conversions"
    __table_args__ = (
        db.UniqueConstraint("product_id", "unit", name="uq_unit_conversions_product_unit"),
        db.CheckConstraint("conversion_factor > 0", name="ck_unit_conversions_factor_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    unit = db.Column(db.String(32), nullable=False)
    conversion_factor = db.Column(db.Float, nullable=False)

    product = db.relationship("Product", back_populates="unit_conversions")

    def to_dict(self) -> dict:
        return {"unit": self.unit, "conversion_factor": self.conversion_factor}


class ProductUnitPrice(db.Model):
    """Fixed price for one unit of a product (overrides base-price computation)."""
    __tablename__ = "product_unit_prices"
    __table_args__ = (
        db.UniqueConstraint("product_id", "unit", name="uq_unit_prices_product_unit"),
        db.CheckConstraint("price >= 0", name="ck_unit_prices_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    unit = db.Column(db.String(32), nullable=False)
    price = db.Column(db.Float, nullable=False)

    product = db.relationship("Product", back_populates="unit_prices")

    def to_dict(self) -> dict:
        return {"unit": self.unit, "price": self.price}


class StockMovement(db.Model):
    """
    Append-only stock ledger entry.

    INVARIANT: stock_after == stock_before + quantity_base
    quantity is the signed change in `unit` as requested; quantity_base is the
    signed change actually applied in base units. shortfall_base records a
    deficit dropped by a clamped over-deduction (0 otherwise).

    IMMUTABLE: Records are never updated or deleted (product_id is nulled
    when its product is deleted).
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_tenant_product_date", "tenant_id", "product_id", "movement_date"),
        db.Index("ix_stock_movements_tenant_type", "tenant_id", "type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    # Weak reference: product snapshot fields survive product deletion
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    product_name = db.Column(db.String(255), nullable=True)
    sku = db.Column(db.String(64), nullable=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    reason = db.Column(db.String(32), nullable=True)

    quantity = db.Column(db.Float, nullable=False)
    unit = db.Column(db.String(32), nullable=False)
    quantity_base = db.Column(db.Float, nullable=False)
    shortfall_base = db.Column(db.Float, nullable=False, default=0.0)

    stock_before = db.Column(db.Float, nullable=False)
    stock_after = db.Column(db.Float, nullable=False)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="SET NULL"), nullable=True, index=True)

    unit_cost = db.Column(db.Float, nullable=False, default=0.0)
    total_cost = db.Column(db.Float, nullable=False, default=0.0)

    notes = db.Column(db.Text, nullable=True)
    reference = db.Column(db.String(128), nullable=True)

    movement_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    # Deleting a product nulls product_id here; the snapshot fields remain
    product = db.relationship("Product", backref=db.backref("stock_movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "sku": self.sku,
            "type": self.type,
            "reason": self.reason,
            "quantity": self.quantity,
            "unit": self.unit,
            "quantity_base": self.quantity_base,
            "shortfall_base": self.shortfall_base,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "sale_id": self.sale_id,
            "unit_cost": self.unit_cost,
            "total_cost": self.total_cost,
            "notes": self.notes,
            "reference": self.reference,
            "movement_date": to_utc_z(self.movement_date),
            "created_by_user_id": self.created_by_user_id,
        }
