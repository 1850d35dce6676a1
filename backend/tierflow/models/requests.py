from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


REQUEST_STATUS_PENDING = "pending"
REQUEST_STATUS_APPROVED = "approved"
REQUEST_STATUS_REJECTED = "rejected"

REQUEST_STATUSES = (REQUEST_STATUS_PENDING, REQUEST_STATUS_APPROVED, REQUEST_STATUS_REJECTED)
TERMINAL_STATUSES = (REQUEST_STATUS_APPROVED, REQUEST_STATUS_REJECTED)


class PurchaseRequest(db.Model):
    """
    A client's ask to move units of a manufacturer product into their own ledger.

    LIFECYCLE:
    1. pending: submitted by the client, awaiting an admin decision
    2. approved: stock transferred and an Order created (terminal)
    3. rejected: declined with a reason, no stock movement (terminal)

    The pending -> terminal step is only ever written with a conditional
    UPDATE on status, so a request is decided at most once.

    organization_id is the organization owning the product's catalog; it is
    what scopes the request to an admin.
    """
    __tablename__ = "purchase_requests"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_purchase_requests_quantity_positive"),
        db.CheckConstraint("unit_price_cents > 0", name="ck_purchase_requests_price_positive"),
        db.Index("ix_purchase_requests_org_status", "organization_id", "status"),
        db.Index("ix_purchase_requests_client_status", "client_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    # Snapshot for listings and notifications
    product_name = db.Column(db.String(255), nullable=False)

    client_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=REQUEST_STATUS_PENDING, index=True)
    notes = db.Column(db.Text, nullable=True)

    # Set iff rejected
    rejection_reason = db.Column(db.Text, nullable=True)
    # Set iff approved
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", use_alter=True, name="fk_purchase_requests_order_id"), nullable=True, unique=True)

    decided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", foreign_keys=[product_id])
    client = db.relationship("User", foreign_keys=[client_id])
    decided_by = db.relationship("User", foreign_keys=[decided_by_user_id])
    organization = db.relationship("Organization")
    order = db.relationship("Order", foreign_keys=[order_id], post_update=True)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PurchaseRequest id={self.id} status={self.status} quantity={self.quantity}>"

    @property
    def total_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "client_id": self.client_id,
            "organization_id": self.organization_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_cents": self.total_cents,
            "status": self.status,
            "notes": self.notes,
            "rejection_reason": self.rejection_reason,
            "order_id": self.order_id,
            "decided_by_user_id": self.decided_by_user_id,
            "decided_at": to_utc_z(self.decided_at) if self.decided_at else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
