from __future__ import annotations

from ..extensions import db
from ..money_utils import as_float, as_money_float
from ..time_utils import to_utc_z, utcnow

PRODUCT_CATEGORIES = (
    "Basmati",
    "Jasmine",
    "Long Grain",
    "Short Grain",
    "Brown Rice",
    "Wild Rice",
    "Other",
)

STOCK_UNITS = ("kg", "ton", "bag", "sack")

TX_STOCK_IN = "stock_in"
TX_STOCK_OUT = "stock_out"
TX_ADJUSTMENT = "adjustment"
TX_TRANSFER = "transfer"
TRANSACTION_TYPES = (TX_STOCK_IN, TX_STOCK_OUT, TX_ADJUSTMENT, TX_TRANSFER)

# Quantities carry 3 decimals (fractional kg), money carries 2.
QUANTITY = db.Numeric(14, 3)
MONEY = db.Numeric(12, 2)


class Product(db.Model):
    """
    Rice product master data.

    STOCK DESIGN DECISION:
    current_stock is a materialized projection of the stock_transactions ledger.
    - Only stock_service.record_transaction() writes it, in the same commit as the
      transaction row that explains the change.
    - version_id is the optimistic lock: a concurrent writer makes the UPDATE
      match zero rows and the mutation is retried against fresh state.

    SKU is optional; when present it is stored upper-cased and is unique
    across all products, active or not.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_active_name", "is_active", "name"),
        db.Index("ix_products_category", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    category = db.Column(db.String(32), nullable=False, default="Other")
    unit = db.Column(db.String(8), nullable=False, default="kg")

    current_stock = db.Column(QUANTITY, nullable=False, default=0)
    min_stock_level = db.Column(QUANTITY, nullable=False, default=0)
    max_stock_level = db.Column(QUANTITY, nullable=True)

    cost_price = db.Column(MONEY, nullable=False)
    selling_price = db.Column(MONEY, nullable=False)

    location = db.Column(db.String(255), nullable=True)
    batch_number = db.Column(db.String(64), nullable=True)
    expiry_date = db.Column(db.DateTime(timezone=True), nullable=True)
    supplier = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.current_stock}>"

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock is not None and self.current_stock <= (self.min_stock_level or 0)

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "category": self.category,
            "unit": self.unit,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "unit": self.unit,
            "current_stock": as_float(self.current_stock),
            "min_stock_level": as_float(self.min_stock_level),
            "max_stock_level": as_float(self.max_stock_level),
            "cost_price": as_money_float(self.cost_price),
            "selling_price": as_money_float(self.selling_price),
            "location": self.location,
            "batch_number": self.batch_number,
            "expiry_date": to_utc_z(self.expiry_date),
            "supplier": self.supplier,
            "is_active": self.is_active,
            "is_low_stock": self.is_low_stock,
            "created_by": self.created_by.to_summary() if self.created_by else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockTransaction(db.Model):
    """
    Append-only stock ledger row.

    stock_before/stock_after snapshot the product's on-hand level around this
    event; stock_after is a pure function of (stock_before, type, quantity).
    unit and total_value are copied at creation and never recomputed.
    """
    __tablename__ = "stock_transactions"
    __table_args__ = (
        db.Index("ix_stock_transactions_product_created", "product_id", "created_at"),
        db.Index("ix_stock_transactions_type_created", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(QUANTITY, nullable=False)
    unit = db.Column(db.String(8), nullable=False)

    price = db.Column(MONEY, nullable=True)
    total_value = db.Column(MONEY, nullable=True)

    stock_before = db.Column(QUANTITY, nullable=False)
    stock_after = db.Column(QUANTITY, nullable=False)

    reference = db.Column(db.String(128), nullable=True)
    batch_number = db.Column(db.String(64), nullable=True)
    expiry_date = db.Column(db.DateTime(timezone=True), nullable=True)
    supplier = db.Column(db.String(255), nullable=True)
    customer = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = db.relationship("Product", backref=db.backref("transactions", lazy="dynamic"))
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])

    def __repr__(self) -> str:
        return (
            f"<StockTransaction id={self.id} product_id={self.product_id} type={self.type} "
            f"{self.stock_before}->{self.stock_after}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product else None,
            "quantity": as_float(self.quantity),
            "unit": self.unit,
            "price": as_money_float(self.price),
            "total_value": as_money_float(self.total_value),
            "stock_before": as_float(self.stock_before),
            "stock_after": as_float(self.stock_after),
            "reference": self.reference,
            "batch_number": self.batch_number,
            "expiry_date": to_utc_z(self.expiry_date),
            "supplier": self.supplier,
            "customer": self.customer,
            "notes": self.notes,
            "created_by": self.created_by.to_summary() if self.created_by else None,
            "created_at": to_utc_z(self.created_at),
        }
