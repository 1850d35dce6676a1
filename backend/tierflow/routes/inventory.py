# backend/tierflow/routes/inventory.py
"""
Client inventory and movement history endpoints.

Read-only: stock only ever changes through purchase request approval.
"""
from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_role, is_superadmin
from ..models.auth import ROLE_ADMIN, ROLE_CLIENT
from ..services import inventory_service, tenant_service
from ..validation import coerce_positive_int
from .errors import register_error_handlers


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")
register_error_handlers(inventory_bp)

MAX_MOVEMENTS = 500


@inventory_bp.get("/client")
@require_auth
@require_role(ROLE_CLIENT, ROLE_ADMIN)
def get_client_inventory():
    """
    A client's own products (units transferred by approvals).

    Clients see their own inventory; admins pass ?client_id= for a client in
    their organization tree.
    """
    if g.current_user.role == ROLE_CLIENT:
        client_id = g.current_user.id
    else:
        client_id = coerce_positive_int(request.args.get("client_id"), "client_id")
        if not is_superadmin():
            tenant_service.require_client_in_scope(client_id, tenant_service.get_current_org_id())

    products = inventory_service.get_client_inventory(client_id)
    return jsonify({
        "client_id": client_id,
        "products": [p.to_dict() for p in products],
        "summary": inventory_service.get_client_inventory_summary(client_id),
    }), 200


@inventory_bp.get("/movements")
@require_auth
@require_role(ROLE_CLIENT, ROLE_ADMIN)
def get_movements():
    """
    Movement history for one product, newest first.

    Query params:
        product_id: required
        limit: optional, default 100
    """
    product_id = coerce_positive_int(request.args.get("product_id"), "product_id")
    limit = request.args.get("limit")
    limit = min(coerce_positive_int(limit, "limit"), MAX_MOVEMENTS) if limit else 100

    if g.current_user.role == ROLE_CLIENT:
        movements = inventory_service.list_movements(
            product_id, owner_client_id=g.current_user.id, limit=limit,
        )
    elif is_superadmin():
        movements = inventory_service.list_movements(product_id, limit=limit)
    else:
        org_ids = tenant_service.get_org_tree_ids(tenant_service.get_current_org_id())
        movements = inventory_service.list_movements(product_id, org_ids=org_ids, limit=limit)

    return jsonify({
        "product_id": product_id,
        "movements": [m.to_dict() for m in movements],
    }), 200
