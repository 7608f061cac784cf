from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from backoffice.time_utils import to_utc_z


def money_to_json(value) -> float | None:
    """Numeric columns come back as Decimal; the wire format is a JSON number."""
    if value is None:
        return None
    return float(Decimal(value))


class Product(db.Model):
    """
    Catalog product.

    Products are never hard-deleted: order items and ledger rows keep
    pointing at them. Deleting from the admin deactivates (is_active=False)
    and hides the product from the storefront listing.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_name", "category", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(100), nullable=False, index=True)
    base_price = db.Column(db.Numeric(10, 2), nullable=False)
    description = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(512), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    variants = db.relationship(
        "Variant",
        back_populates="product",
        lazy=True,
        order_by="Variant.id",
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} category={self.category!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "base_price": money_to_json(self.base_price),
            "description": self.description,
            "image_url": self.image_url,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Variant(db.Model):
    """
    A sellable variant of a product (e.g. Colour=Black).

    STOCK: stock_quantity is owned by the inventory ledger. It is changed only
    by inventory_service.adjust_stock(), which appends an InventoryTransaction
    in the same DB transaction. Never assign stock_quantity anywhere else.

    CONCURRENCY: version_id_col gives optimistic locking on top of the
    SELECT ... FOR UPDATE taken by the ledger, so a lost update surfaces as
    StaleDataError and is retried.
    """
    __tablename__ = "product_variants"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_variants_stock_non_negative"),
        db.Index("ix_variants_product_active", "product_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    variant_type = db.Column(db.String(50), nullable=False)
    variant_value = db.Column(db.String(100), nullable=False)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=5)

    sku = db.Column(db.String(64), nullable=True, unique=True)
    is_available = db.Column(db.Boolean, nullable=False, default=True)
    variant_price = db.Column(db.Numeric(10, 2), nullable=True)
    image_url = db.Column(db.String(512), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", back_populates="variants")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def low_stock(self) -> bool:
        return self.stock_quantity <= self.low_stock_threshold

    @property
    def in_stock(self) -> bool:
        return bool(self.is_available) and self.stock_quantity > 0

    @property
    def label(self) -> str:
        return f"{self.variant_type}: {self.variant_value}"

    def __repr__(self) -> str:
        return (
            f"<Variant id={self.id} product_id={self.product_id} "
            f"{self.variant_type}={self.variant_value!r} stock={self.stock_quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_type": self.variant_type,
            "variant_value": self.variant_value,
            "stock_quantity": self.stock_quantity,
            "low_stock_threshold": self.low_stock_threshold,
            "low_stock": self.low_stock,
            "in_stock": self.in_stock,
            "sku": self.sku,
            "is_available": self.is_available,
            "variant_price": money_to_json(self.variant_price),
            "image_url": self.image_url,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


# One variant per product per type/value, ignoring case ("Colour/Black" == "colour/black").
db.Index(
    "uq_variants_product_type_value",
    Variant.product_id,
    db.func.lower(Variant.variant_type),
    db.func.lower(Variant.variant_value),
    unique=True,
)
