# backend/tierflow/routes/purchase_requests.py
"""
Purchase request API routes.

Clients submit requests for manufacturer stock; admins approve (transferring
the stock into the client's inventory) or reject them. Domain errors are
turned into JSON responses by the handlers in routes/errors.py.
"""
from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_role, is_superadmin
from ..errors import ValidationError, NotFoundError
from ..models.auth import ROLE_ADMIN, ROLE_CLIENT
from ..services import purchase_request_service, tenant_service
from ..validation import coerce_positive_int, money_to_cents, validate_price_cents
from .errors import register_error_handlers


purchase_requests_bp = Blueprint("purchase_requests", __name__, url_prefix="/api/purchase-requests")
register_error_handlers(purchase_requests_bp)


def _first_present(data: dict, *keys):
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def _admin_scope() -> int | None:
    """Organization tree an admin acts on; None means every organization."""
    return None if is_superadmin() else tenant_service.get_current_org_id()


def _is_client() -> bool:
    return g.current_user.role == ROLE_CLIENT


@purchase_requests_bp.post("")
@require_auth
@require_role(ROLE_CLIENT, ROLE_ADMIN)
def create_purchase_request():
    """
    Submit a purchase request.

    Request body:
    {
        "productId": int,            // or product_id
        "clientId": int,             // admins only; clients submit for themselves
        "quantity": int,
        "price": "49.99",            // or unit_price_cents: int
        "notes": str (optional)
    }

    Returns:
        201: {"request": {...}}
        400: Validation failure ({"error", "field"})
        404: Unknown product or client
    """
    data = request.get_json(silent=True) or {}

    product_id = coerce_positive_int(_first_present(data, "productId", "product_id"), "productId")

    if "price" in data:
        unit_price_cents = money_to_cents(data["price"], "price")
    elif "unit_price_cents" in data:
        unit_price_cents = validate_price_cents(data["unit_price_cents"], "unit_price_cents")
    else:
        raise ValidationError("price is required", field="price")

    raw_client_id = _first_present(data, "clientId", "client_id")
    if _is_client():
        if raw_client_id is not None and coerce_positive_int(raw_client_id, "clientId") != g.current_user.id:
            raise NotFoundError("Client not found")
        client_id = g.current_user.id
    else:
        client_id = coerce_positive_int(raw_client_id, "clientId")
        if not is_superadmin():
            tenant_service.require_client_in_scope(client_id, tenant_service.get_current_org_id())

    purchase_request = purchase_request_service.submit(
        client_id=client_id,
        product_id=product_id,
        quantity=data.get("quantity"),
        unit_price_cents=unit_price_cents,
        notes=data.get("notes"),
    )
    return jsonify({"request": purchase_request.to_dict()}), 201


@purchase_requests_bp.get("")
@require_auth
@require_role(ROLE_CLIENT, ROLE_ADMIN)
def list_purchase_requests():
    """
    List purchase requests, newest first.

    Query params:
        organizationId: Organization to filter by (admins). Malformed or absent
            values fall back to the clients of the caller's organization.
        status: pending | approved | rejected | all
        limit: Max rows (default 100, max 500)
        createdAfter: ISO-8601 lower bound on created_at

    Clients only ever see their own requests.
    """
    status = request.args.get("status")
    limit = request.args.get("limit")
    created_after = purchase_request_service.parse_created_after(request.args.get("createdAfter"))

    if _is_client():
        requests = purchase_request_service.list_client_requests(
            g.current_user.id, status=status, limit=limit, created_after=created_after,
        )
    else:
        requests = purchase_request_service.list_requests_for_admin(
            tenant_service.get_current_org_id(),
            organization_id_param=request.args.get("organizationId"),
            status=status,
            limit=limit,
            created_after=created_after,
            allow_any_org=is_superadmin(),
        )

    return jsonify({
        "requests": [r.to_dict() for r in requests],
        "count": len(requests),
    }), 200


@purchase_requests_bp.get("/<int:request_id>")
@require_auth
@require_role(ROLE_CLIENT, ROLE_ADMIN)
def get_purchase_request(request_id: int):
    if _is_client():
        purchase_request = purchase_request_service.get_request(request_id, client_id=g.current_user.id)
    else:
        purchase_request = purchase_request_service.get_request(request_id, org_id=_admin_scope())

    order = purchase_request_service.get_order_for_request(purchase_request)
    return jsonify({
        "request": purchase_request.to_dict(),
        "order": order.to_dict() if order else None,
    }), 200


@purchase_requests_bp.get("/client/<int:client_id>")
@require_auth
@require_role(ROLE_CLIENT, ROLE_ADMIN)
def list_requests_for_client(client_id: int):
    """Requests submitted by one client. Clients may only ask about themselves."""
    if _is_client():
        if client_id != g.current_user.id:
            raise NotFoundError("Client not found")
    elif not is_superadmin():
        tenant_service.require_client_in_scope(client_id, tenant_service.get_current_org_id())

    requests = purchase_request_service.list_client_requests(
        client_id,
        status=request.args.get("status"),
        limit=request.args.get("limit"),
    )
    return jsonify({
        "client_id": client_id,
        "requests": [r.to_dict() for r in requests],
        "count": len(requests),
    }), 200


@purchase_requests_bp.post("/<int:request_id>/approve")
@require_auth
@require_role(ROLE_ADMIN)
def approve_purchase_request(request_id: int):
    """
    Approve a pending request and transfer the stock.

    Returns:
        200: {"request", "order", "product", "client_product"}
        404: Request not found (or outside the caller's organization)
        409: Request already approved/rejected
        422: Not enough manufacturer stock ({"available", "requested"})
        503: Storage conflict, safe to retry ({"retryable": true})
    """
    result = purchase_request_service.approve(
        request_id,
        actor_id=g.current_user.id,
        org_id=_admin_scope(),
    )
    return jsonify(result.to_dict()), 200


@purchase_requests_bp.post("/<int:request_id>/reject")
@require_auth
@require_role(ROLE_ADMIN)
def reject_purchase_request(request_id: int):
    """
    Reject a pending request.

    Request body:
    {
        "reason": str
    }
    """
    data = request.get_json(silent=True) or {}

    purchase_request = purchase_request_service.reject(
        request_id,
        actor_id=g.current_user.id,
        reason=data.get("reason"),
        org_id=_admin_scope(),
    )
    return jsonify({"request": purchase_request.to_dict()}), 200
