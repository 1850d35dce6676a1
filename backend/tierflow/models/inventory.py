from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


MOVEMENT_MANUFACTURER_DEDUCTION = "manufacturer_deduction"
MOVEMENT_CLIENT_ALLOCATION = "client_allocation"

MOVEMENT_TYPES = (MOVEMENT_MANUFACTURER_DEDUCTION, MOVEMENT_CLIENT_ALLOCATION)


class InventoryMovement(db.Model):
    """
    Append-only history of stock counter changes.

    Each approval writes one negative manufacturer_deduction row against the
    manufacturer product and one positive client_allocation row against the
    client product, inside the approval transaction. previous_quantity and
    new_quantity are the counter values around the change.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_inventory_movements_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    movement_type = db.Column(db.String(32), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Signed delta applied to the counter
    quantity = db.Column(db.Integer, nullable=False)
    previous_quantity = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    purchase_request_id = db.Column(db.Integer, db.ForeignKey("purchase_requests.id"), nullable=True, index=True)

    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "movement_type": self.movement_type,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "actor_user_id": self.actor_user_id,
            "client_id": self.client_id,
            "purchase_request_id": self.purchase_request_id,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
