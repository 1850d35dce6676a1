from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


OWNER_MANUFACTURER = "manufacturer"
OWNER_CLIENT = "client"


class Product(db.Model):
    """
    Product master data, stored as a tagged union over one table.

    owner_role is the discriminator:
    - ManufacturerProduct: catalog item owned by an organization; carries the
      manufacturer stock counter (`stock`) and order-quantity limits.
    - ClientProduct: a client's own ledger entry for units transferred from a
      manufacturer product; carries `current_stock` and points back at its
      origin through `source_product_id`.

    The two ledgers never share a row. Ledger columns of the other variant are
    always NULL.

    SKU: globally unique. Client SKUs are derived from the client id and the
    source SKU (see purchase_request_service).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_org_name", "org_id", "name"),
        db.Index("ix_products_org_owner_role", "org_id", "owner_role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_role = db.Column(db.String(16), nullable=False, index=True)

    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    sku = db.Column(db.String(128), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(120), nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    loyalty_points = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    organization = db.relationship("Organization", backref=db.backref("products", lazy=True))

    __mapper_args__ = {
        "polymorphic_on": owner_role,
        "version_id_col": version_id,
    }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id} sku={self.sku!r} name={self.name!r} org_id={self.org_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_role": self.owner_role,
            "org_id": self.org_id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price_cents": self.price_cents,
            "loyalty_points": self.loyalty_points,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ManufacturerProduct(Product):
    """Catalog product owned by the manufacturer tier."""

    stock = db.Column(
        db.Integer,
        db.CheckConstraint("stock >= 0", name="ck_products_stock_nonnegative"),
        nullable=True,
        default=0,
    )
    min_order_quantity = db.Column(db.Integer, nullable=True, default=1)
    max_order_quantity = db.Column(db.Integer, nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_by = db.relationship("User", foreign_keys=[created_by_user_id])

    __mapper_args__ = {"polymorphic_identity": OWNER_MANUFACTURER}

    def has_stock(self, quantity: int) -> bool:
        return (self.stock or 0) >= quantity

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "stock": self.stock,
            "min_order_quantity": self.min_order_quantity,
            "max_order_quantity": self.max_order_quantity,
            "created_by_user_id": self.created_by_user_id,
        })
        return data


class ClientProduct(Product):
    """
    Client-owned inventory ledger entry.

    At most one row exists per (owner_client_id, source_product_id); approvals
    for the same source product accumulate into it.
    """

    owner_client_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    source_product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)

    current_stock = db.Column(
        db.Integer,
        db.CheckConstraint("current_stock >= 0", name="ck_products_current_stock_nonnegative"),
        nullable=True,
        default=0,
    )
    initial_stock = db.Column(db.Integer, nullable=True, default=0)
    reorder_level = db.Column(db.Integer, nullable=True, default=5)
    last_updated = db.Column(db.DateTime(timezone=True), nullable=True)

    owner = db.relationship("User", foreign_keys=[owner_client_id])

    __mapper_args__ = {"polymorphic_identity": OWNER_CLIENT}

    @property
    def is_low_stock(self) -> bool:
        return (self.current_stock or 0) <= (self.reorder_level or 0)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "owner_client_id": self.owner_client_id,
            "source_product_id": self.source_product_id,
            "current_stock": self.current_stock,
            "initial_stock": self.initial_stock,
            "reorder_level": self.reorder_level,
            "last_updated": to_utc_z(self.last_updated) if self.last_updated else None,
            "low_stock": self.is_low_stock,
        })
        return data


# One client ledger entry per (client, source product). Manufacturer rows carry
# NULLs in both columns and are not constrained by this index.
db.Index(
    "uq_products_client_source",
    ClientProduct.__table__.c.owner_client_id,
    ClientProduct.__table__.c.source_product_id,
    unique=True,
)
