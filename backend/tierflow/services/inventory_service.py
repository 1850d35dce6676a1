# Overview: Client inventory reads and the append-only movement log written by approvals.

from __future__ import annotations

from ..errors import NotFoundError
from ..extensions import db
from ..models import ClientProduct, InventoryMovement, Product


def record_movement(
    *,
    movement_type: str,
    product_id: int,
    quantity: int,
    previous_quantity: int,
    new_quantity: int,
    actor_user_id: int | None = None,
    client_id: int | None = None,
    purchase_request_id: int | None = None,
    note: str | None = None,
) -> InventoryMovement:
    """
    Append one movement row in the caller's transaction.

    No commit here: the movement must land or vanish together with the stock
    change it describes.
    """
    if previous_quantity + quantity != new_quantity:
        raise ValueError(
            f"Movement does not balance: {previous_quantity} + {quantity} != {new_quantity}"
        )

    movement = InventoryMovement(
        movement_type=movement_type,
        product_id=product_id,
        quantity=quantity,
        previous_quantity=previous_quantity,
        new_quantity=new_quantity,
        actor_user_id=actor_user_id,
        client_id=client_id,
        purchase_request_id=purchase_request_id,
        note=note,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def get_client_inventory(client_id: int) -> list[ClientProduct]:
    return (
        db.session.query(ClientProduct)
        .filter_by(owner_client_id=client_id, is_active=True)
        .order_by(ClientProduct.name, ClientProduct.id)
        .all()
    )


def get_client_inventory_summary(client_id: int) -> dict:
    """Totals shown above a client's inventory listing."""
    products = get_client_inventory(client_id)
    return {
        "client_id": client_id,
        "product_count": len(products),
        "total_units": sum(p.current_stock or 0 for p in products),
        "low_stock_count": sum(1 for p in products if p.is_low_stock),
    }


def list_movements(
    product_id: int,
    *,
    org_ids: set[int] | None = None,
    owner_client_id: int | None = None,
    limit: int = 100,
) -> list[InventoryMovement]:
    """
    Movement history for one product, newest first.

    org_ids limits the lookup to products owned by those organizations and
    owner_client_id to one client's ledger entries; anything else is reported
    as not found.
    """
    if owner_client_id is not None:
        query = db.session.query(ClientProduct).filter_by(id=product_id, owner_client_id=owner_client_id)
    else:
        query = db.session.query(Product).filter_by(id=product_id)
    if org_ids is not None:
        query = query.filter(Product.org_id.in_(org_ids))
    product = query.first()
    if not product:
        raise NotFoundError(f"Product {product_id} not found")

    return (
        db.session.query(InventoryMovement)
        .filter_by(product_id=product_id)
        .order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
        .limit(limit)
        .all()
    )
