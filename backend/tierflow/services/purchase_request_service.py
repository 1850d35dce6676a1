# backend/tierflow/services/purchase_request_service.py
"""
Purchase-request approval and inventory transfer engine.

WHY: A client asks for units of a manufacturer product; an admin approves or
rejects. Approval moves stock from the manufacturer's counter into the client's
own ledger entry, creates the Order and closes the request, all in one
transaction and at most once.

LIFECYCLE:
1. pending: created by submit(); no stock is reserved
2. approved: approve() transferred the stock and created the Order
3. rejected: reject() recorded the reason; no stock movement

CONCURRENCY:
Both writes that matter are conditional UPDATEs inside the approval
transaction:
- the request claim: status = 'approved' WHERE status = 'pending'
- the stock decrement: stock = stock - q WHERE stock >= q
Zero affected rows means another transaction got there first, so a lost race
surfaces as InvalidStateError or InsufficientStockError instead of a double
transfer or negative stock. Row locks (SELECT ... FOR UPDATE) are taken where
the database supports them but are not relied upon.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import (
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import (
    ClientProduct,
    ManufacturerProduct,
    Order,
    OrderLine,
    PurchaseRequest,
    User,
)
from ..models.auth import ROLE_CLIENT
from ..models.inventory import MOVEMENT_CLIENT_ALLOCATION, MOVEMENT_MANUFACTURER_DEDUCTION
from ..models.orders import ORDER_STATUS_COMPLETED
from ..models.requests import (
    REQUEST_STATUS_APPROVED,
    REQUEST_STATUS_PENDING,
    REQUEST_STATUS_REJECTED,
    REQUEST_STATUSES,
)
from ..time_utils import parse_iso_datetime, utcnow
from ..validation import (
    MAX_QUANTITY,
    coerce_positive_int,
    optional_int,
    optional_text,
    require_text,
    validate_price_cents,
)
from . import inventory_service, notification_service, tenant_service
from .concurrency import lock_for_update, run_in_transaction
from .document_service import next_order_number


logger = logging.getLogger(__name__)

# A concurrent first approval for the same (client, product) pair, or for the
# first order of an organization, loses on a unique constraint; re-running the
# unit of work then finds the row the winner created.
APPROVAL_RETRY_ON = (OperationalError, StaleDataError, IntegrityError)

DEFAULT_LIST_LIMIT = 100
MAX_LIST_LIMIT = 500


@dataclass
class ApprovalResult:
    order: Order
    request: PurchaseRequest
    manufacturer_product: ManufacturerProduct
    client_product: ClientProduct
    client_product_created: bool

    def to_dict(self) -> dict:
        return {
            "request": self.request.to_dict(),
            "order": self.order.to_dict(),
            "product": self.manufacturer_product.to_dict(),
            "client_product": {
                **self.client_product.to_dict(),
                "is_new": self.client_product_created,
            },
        }


# =============================================================================
# SUBMISSION
# =============================================================================

def submit(
    client_id: int,
    product_id: int,
    quantity,
    unit_price_cents,
    notes: str | None = None,
) -> PurchaseRequest:
    """
    Create a pending purchase request.

    Args:
        client_id: Client user asking for the units
        product_id: Manufacturer product to draw from
        quantity: Units requested (> 0, within the product's order limits)
        unit_price_cents: Agreed unit price in cents (> 0)
        notes: Optional free text from the client

    Returns:
        PurchaseRequest in pending status

    Raises:
        ValidationError: Bad quantity/price or quantity outside order limits
        NotFoundError: Unknown client or product, or product outside the
            client's reachable organizations
    """
    quantity = coerce_positive_int(quantity, "quantity", maximum=MAX_QUANTITY)
    unit_price_cents = validate_price_cents(unit_price_cents, "unit_price_cents")
    notes = optional_text(notes, "notes", max_length=2000)

    def _op() -> PurchaseRequest:
        client = db.session.query(User).filter_by(id=client_id, role=ROLE_CLIENT, is_active=True).first()
        if not client:
            raise NotFoundError(f"Client {client_id} not found")
        tenant_service.validate_org_active(client.org_id)

        product = db.session.query(ManufacturerProduct).filter_by(id=product_id, is_active=True).first()
        if not product or product.org_id not in tenant_service.get_reachable_org_ids(client.org_id):
            raise NotFoundError(f"Product {product_id} not found")

        min_qty = product.min_order_quantity or 1
        if quantity < min_qty:
            raise ValidationError(f"Minimum order quantity for this product is {min_qty}", field="quantity")
        if product.max_order_quantity is not None and quantity > product.max_order_quantity:
            raise ValidationError(
                f"Maximum order quantity for this product is {product.max_order_quantity}",
                field="quantity",
            )

        purchase_request = PurchaseRequest(
            product_id=product.id,
            product_name=product.name,
            client_id=client.id,
            organization_id=product.org_id,
            quantity=quantity,
            unit_price_cents=unit_price_cents,
            status=REQUEST_STATUS_PENDING,
            notes=notes,
        )
        db.session.add(purchase_request)
        db.session.flush()
        return purchase_request

    purchase_request = run_in_transaction(_op)
    logger.info(
        "Purchase request %s submitted: client=%s product=%s quantity=%s",
        purchase_request.id, client_id, product_id, quantity,
    )
    return purchase_request


# =============================================================================
# APPROVAL (STOCK TRANSFER)
# =============================================================================

def approve(request_id: int, actor_id: int, org_id: int | None = None) -> ApprovalResult:
    """
    Approve a pending request and transfer the stock.

    Args:
        request_id: Purchase request to approve
        actor_id: Admin deciding the request (becomes the order's seller)
        org_id: When given, the request must belong to this organization tree

    Returns:
        ApprovalResult with the order, the request, both products

    Raises:
        NotFoundError: Request or manufacturer product missing / out of scope
        InvalidStateError: Request is not pending
        InsufficientStockError: Manufacturer stock below the requested quantity
        TransactionConflictError: Storage kept conflicting; nothing was written
    """
    def _op() -> ApprovalResult:
        purchase_request = _load_request_for_decision(request_id, org_id)

        product = lock_for_update(
            db.session.query(ManufacturerProduct).filter_by(id=purchase_request.product_id)
        ).first()
        if not product:
            raise NotFoundError(f"Product {purchase_request.product_id} not found")

        quantity = purchase_request.quantity
        if not product.has_stock(quantity):
            raise InsufficientStockError(
                f"Not enough stock available for {product.name}",
                available=product.stock,
                requested=quantity,
            )

        now = utcnow()
        _claim_request(purchase_request, REQUEST_STATUS_APPROVED, actor_id, now)

        previous_stock, new_stock = _decrement_manufacturer_stock(product, quantity, now)

        client_product, created, previous_client_stock = _credit_client_product(
            purchase_request, product, now
        )

        order = _create_order(purchase_request, product, actor_id)
        purchase_request.order_id = order.id
        purchase_request.updated_at = now

        inventory_service.record_movement(
            movement_type=MOVEMENT_MANUFACTURER_DEDUCTION,
            product_id=product.id,
            quantity=-quantity,
            previous_quantity=previous_stock,
            new_quantity=new_stock,
            actor_user_id=actor_id,
            client_id=purchase_request.client_id,
            purchase_request_id=purchase_request.id,
            note=f"Order {order.order_number}",
        )
        inventory_service.record_movement(
            movement_type=MOVEMENT_CLIENT_ALLOCATION,
            product_id=client_product.id,
            quantity=quantity,
            previous_quantity=previous_client_stock,
            new_quantity=client_product.current_stock,
            actor_user_id=actor_id,
            client_id=purchase_request.client_id,
            purchase_request_id=purchase_request.id,
            note=f"Order {order.order_number}",
        )

        db.session.flush()
        return ApprovalResult(
            order=order,
            request=purchase_request,
            manufacturer_product=product,
            client_product=client_product,
            client_product_created=created,
        )

    result = run_in_transaction(_op, retry_on=APPROVAL_RETRY_ON)

    logger.info(
        "Purchase request %s approved by user %s: order=%s quantity=%s stock_left=%s",
        result.request.id, actor_id, result.order.order_number,
        result.request.quantity, result.manufacturer_product.stock,
    )
    notification_service.publish_request_decided(
        notification_service.build_event(
            notification_service.EVENT_REQUEST_APPROVED, result.request, actor_id,
        )
    )
    return result


def _decrement_manufacturer_stock(product: ManufacturerProduct, quantity: int, now) -> tuple[int, int]:
    """
    Guarded decrement. Returns (previous, new) stock as seen by this transaction.

    Values loaded before the UPDATE may predate a concurrent approval, so both
    numbers are derived from the row re-read after the write.
    """
    stmt = (
        update(ManufacturerProduct)
        .where(
            ManufacturerProduct.id == product.id,
            ManufacturerProduct.stock >= quantity,
        )
        .values(
            stock=ManufacturerProduct.stock - quantity,
            version_id=ManufacturerProduct.version_id + 1,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if not db.session.execute(stmt).rowcount:
        db.session.refresh(product)
        raise InsufficientStockError(
            f"Not enough stock available for {product.name}",
            available=product.stock,
            requested=quantity,
        )
    db.session.refresh(product)
    return product.stock + quantity, product.stock


def _credit_client_product(
    purchase_request: PurchaseRequest,
    source: ManufacturerProduct,
    now,
) -> tuple[ClientProduct, bool, int]:
    """
    Add the units to the client's ledger entry for this source product.

    Returns (client_product, created, previous_stock).
    """
    quantity = purchase_request.quantity
    client_product = lock_for_update(
        db.session.query(ClientProduct).filter_by(
            owner_client_id=purchase_request.client_id,
            source_product_id=source.id,
        )
    ).first()

    if client_product:
        db.session.refresh(client_product)
        previous = client_product.current_stock or 0
        client_product.current_stock = previous + quantity
        client_product.last_updated = now
        client_product.is_active = True
        db.session.flush()
        return client_product, False, previous

    client = db.session.query(User).filter_by(id=purchase_request.client_id).first()
    client_product = ClientProduct(
        org_id=client.org_id if client else source.org_id,
        sku=client_sku(purchase_request.client_id, source.sku),
        name=source.name,
        description=source.description,
        category=source.category,
        price_cents=purchase_request.unit_price_cents,
        loyalty_points=source.loyalty_points,
        is_active=True,
        owner_client_id=purchase_request.client_id,
        source_product_id=source.id,
        current_stock=quantity,
        initial_stock=quantity,
        last_updated=now,
    )
    db.session.add(client_product)
    db.session.flush()
    return client_product, True, 0


def client_sku(client_id: int, source_sku: str) -> str:
    """Client-scoped SKU; unique because a client has one entry per source product."""
    return f"CL-{client_id:05d}-{source_sku}"


def _create_order(purchase_request: PurchaseRequest, product: ManufacturerProduct, seller_id: int) -> Order:
    line_total_cents = purchase_request.quantity * purchase_request.unit_price_cents

    order = Order(
        order_number=next_order_number(organization_id=purchase_request.organization_id),
        organization_id=purchase_request.organization_id,
        client_id=purchase_request.client_id,
        seller_id=seller_id,
        purchase_request_id=purchase_request.id,
        total_cents=line_total_cents,
        status=ORDER_STATUS_COMPLETED,
    )
    db.session.add(order)
    db.session.flush()

    db.session.add(OrderLine(
        order_id=order.id,
        product_id=product.id,
        quantity=purchase_request.quantity,
        unit_price_cents=purchase_request.unit_price_cents,
        line_total_cents=line_total_cents,
    ))
    db.session.flush()
    return order


# =============================================================================
# REJECTION
# =============================================================================

def reject(request_id: int, actor_id: int, reason, org_id: int | None = None) -> PurchaseRequest:
    """
    Reject a pending request. No stock moves.

    Raises:
        ValidationError: Empty reason
        NotFoundError: Request missing or out of scope
        InvalidStateError: Request is not pending
    """
    reason = require_text(reason, "reason", max_length=2000)

    def _op() -> PurchaseRequest:
        purchase_request = _load_request_for_decision(request_id, org_id)
        now = utcnow()
        _claim_request(purchase_request, REQUEST_STATUS_REJECTED, actor_id, now, rejection_reason=reason)
        return purchase_request

    purchase_request = run_in_transaction(_op)

    logger.info("Purchase request %s rejected by user %s", purchase_request.id, actor_id)
    notification_service.publish_request_decided(
        notification_service.build_event(
            notification_service.EVENT_REQUEST_REJECTED, purchase_request, actor_id, reason=reason,
        )
    )
    return purchase_request


# =============================================================================
# SHARED DECISION HELPERS
# =============================================================================

def _load_request_for_decision(request_id: int, org_id: int | None) -> PurchaseRequest:
    purchase_request = lock_for_update(
        db.session.query(PurchaseRequest).filter_by(id=request_id)
    ).first()
    if not purchase_request or not _in_scope(purchase_request, org_id):
        raise NotFoundError(f"Purchase request {request_id} not found")
    _require_pending(purchase_request)
    return purchase_request


def _require_pending(purchase_request: PurchaseRequest) -> None:
    if purchase_request.is_terminal:
        raise InvalidStateError(
            f"Request is already {purchase_request.status}",
            status=purchase_request.status,
        )


def _claim_request(
    purchase_request: PurchaseRequest,
    new_status: str,
    actor_id: int,
    now,
    rejection_reason: str | None = None,
) -> None:
    """
    Compare-and-swap pending -> new_status.

    The WHERE on status makes the transition happen once even when two
    deciders read the request as pending at the same time.
    """
    values = {
        "status": new_status,
        "decided_by_user_id": actor_id,
        "decided_at": now,
        "updated_at": now,
        "version_id": PurchaseRequest.version_id + 1,
    }
    if rejection_reason is not None:
        values["rejection_reason"] = rejection_reason

    stmt = (
        update(PurchaseRequest)
        .where(
            PurchaseRequest.id == purchase_request.id,
            PurchaseRequest.status == REQUEST_STATUS_PENDING,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    claimed = db.session.execute(stmt).rowcount
    db.session.refresh(purchase_request)
    if not claimed:
        raise InvalidStateError(
            f"Request is already {purchase_request.status}",
            status=purchase_request.status,
        )


def _in_scope(purchase_request: PurchaseRequest, org_id: int | None) -> bool:
    if org_id is None:
        return True
    return purchase_request.organization_id in tenant_service.get_org_tree_ids(org_id)


# =============================================================================
# QUERIES
# =============================================================================

def get_request(request_id: int, org_id: int | None = None, client_id: int | None = None) -> PurchaseRequest:
    """
    Fetch one request, scoped to an admin's organization tree or to one client.

    Raises NotFoundError when missing or out of scope.
    """
    purchase_request = db.session.query(PurchaseRequest).filter_by(id=request_id).first()
    if not purchase_request or not _in_scope(purchase_request, org_id):
        raise NotFoundError(f"Purchase request {request_id} not found")
    if client_id is not None and purchase_request.client_id != client_id:
        raise NotFoundError(f"Purchase request {request_id} not found")
    return purchase_request


def normalize_status_filter(status) -> str | None:
    """'all' or empty means no filter; anything else must be a known status."""
    if status is None:
        return None
    status = str(status).strip().lower()
    if not status or status == "all":
        return None
    if status not in REQUEST_STATUSES:
        raise ValidationError(f"Unknown status: {status}", field="status")
    return status


def normalize_limit(limit) -> int:
    if limit is None or limit == "":
        return DEFAULT_LIST_LIMIT
    return min(coerce_positive_int(limit, "limit"), MAX_LIST_LIMIT)


def parse_created_after(value, field: str = "createdAfter"):
    try:
        return parse_iso_datetime(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an ISO-8601 datetime", field=field)


def list_requests(
    *,
    organization_id: int | None = None,
    client_ids: set[int] | None = None,
    status: str | None = None,
    created_after=None,
    limit: int = DEFAULT_LIST_LIMIT,
) -> list[PurchaseRequest]:
    """
    List requests newest first.

    Exactly one scope is expected from the caller: an explicit organization_id,
    or the set of client ids derived from the caller's organization.
    """
    query = db.session.query(PurchaseRequest)

    if organization_id is not None:
        query = query.filter(PurchaseRequest.organization_id == organization_id)
    if client_ids is not None:
        if not client_ids:
            return []
        query = query.filter(PurchaseRequest.client_id.in_(client_ids))
    if status:
        query = query.filter(PurchaseRequest.status == status)
    if created_after is not None:
        query = query.filter(PurchaseRequest.created_at >= created_after)

    return (
        query.order_by(PurchaseRequest.created_at.desc(), PurchaseRequest.id.desc())
        .limit(limit)
        .all()
    )


def list_requests_for_admin(
    admin_org_id: int,
    organization_id_param=None,
    status=None,
    limit=None,
    created_after=None,
    allow_any_org: bool = False,
) -> list[PurchaseRequest]:
    """
    Admin listing with the organization fallback.

    - A well-formed organization id in the admin's tree filters by it.
    - A malformed or absent one falls back to the admin's derived client ids
      rather than failing the listing.
    - A well-formed id outside the tree is reported as not found, unless
      allow_any_org (superadmin).
    """
    status = normalize_status_filter(status)
    limit = normalize_limit(limit)
    organization_id = optional_int(organization_id_param)

    if organization_id is not None:
        if not allow_any_org:
            tenant_service.require_org_in_scope(organization_id, admin_org_id)
        return list_requests(
            organization_id=organization_id, status=status, created_after=created_after, limit=limit,
        )

    if organization_id_param not in (None, ""):
        logger.info(
            "Malformed organizationId %r; scoping by clients of organization %s",
            organization_id_param, admin_org_id,
        )

    client_ids = tenant_service.get_org_client_ids(admin_org_id)
    return list_requests(client_ids=client_ids, status=status, created_after=created_after, limit=limit)


def list_client_requests(client_id: int, status=None, limit=None, created_after=None) -> list[PurchaseRequest]:
    return list_requests(
        client_ids={client_id},
        status=normalize_status_filter(status),
        created_after=created_after,
        limit=normalize_limit(limit),
    )


def get_order_for_request(purchase_request: PurchaseRequest) -> Order | None:
    if purchase_request.order_id is None:
        return None
    return db.session.query(Order).filter_by(id=purchase_request.order_id).first()
