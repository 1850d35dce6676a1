"""
Tenant scoping helpers.

WHY: Every purchase request belongs to the organization owning the product's
catalog. Admins act on their own organization and its descendants (client
organizations placed under it); clients order from their own organization and
its ancestors. Centralizing these walks keeps the services and routes honest.

SECURITY INVARIANTS:
1. Every authenticated request has g.org_id set
2. IDs from client input are checked against the caller's organization tree
3. Out-of-scope records are reported as "not found" so existence in another
   tenant is never revealed
4. Cross-tenant attempts are logged

USAGE:
    from tierflow.services.tenant_service import get_org_client_ids, require_client_in_scope

    client_ids = get_org_client_ids(g.org_id)
    client = require_client_in_scope(client_id, g.org_id)
"""

from __future__ import annotations

import logging

from flask import g, has_request_context, request

from ..errors import NotFoundError
from ..extensions import db
from ..models import Organization, User
from ..models.auth import ROLE_CLIENT


logger = logging.getLogger(__name__)

# Guards against accidental cycles in parent_org_id
MAX_HIERARCHY_DEPTH = 16


class TenantAccessError(NotFoundError):
    """Raised when a record outside the caller's tenant is referenced."""
    pass


def get_current_org_id() -> int:
    """
    Get current tenant's org_id from Flask g context.

    Raises TenantAccessError if org_id not set. This should never happen after
    @require_auth, but is a safety check.
    """
    if not hasattr(g, 'org_id') or g.org_id is None:
        raise TenantAccessError("Tenant context not established")
    return g.org_id


def get_org_tree_ids(org_id: int) -> set[int]:
    """Organization ids administered from org_id: itself plus all descendants."""
    found = {org_id}
    frontier = [org_id]
    depth = 0
    while frontier and depth < MAX_HIERARCHY_DEPTH:
        rows = db.session.query(Organization.id).filter(Organization.parent_org_id.in_(frontier)).all()
        frontier = [r.id for r in rows if r.id not in found]
        found.update(frontier)
        depth += 1
    return found


def get_reachable_org_ids(org_id: int) -> set[int]:
    """Organization ids whose catalogs a member of org_id may order from: itself plus ancestors."""
    found = set()
    current = org_id
    depth = 0
    while current is not None and current not in found and depth < MAX_HIERARCHY_DEPTH:
        found.add(current)
        current = (
            db.session.query(Organization.parent_org_id)
            .filter_by(id=current)
            .scalar()
        )
        depth += 1
    return found


def get_org_client_ids(org_id: int) -> set[int]:
    """
    Ids of client users belonging to org_id or any of its descendants.

    This is the derived scope used when a listing cannot be filtered by an
    explicit organization id.
    """
    org_ids = get_org_tree_ids(org_id)
    rows = (
        db.session.query(User.id)
        .filter(User.org_id.in_(org_ids), User.role == ROLE_CLIENT)
        .all()
    )
    return {r.id for r in rows}


def require_org_in_scope(org_id: int, admin_org_id: int) -> Organization:
    """
    Validate that org_id is administered from admin_org_id.

    Raises TenantAccessError (reported as not found) otherwise.
    """
    org = db.session.query(Organization).filter_by(id=org_id).first()
    if not org or org.id not in get_org_tree_ids(admin_org_id):
        _log_cross_tenant_attempt(f"Organization {org_id} outside tree of {admin_org_id}", admin_org_id)
        raise TenantAccessError("Organization not found")
    return org


def require_client_in_scope(client_id: int, admin_org_id: int) -> User:
    """Validate that client_id is a client user within admin_org_id's tree."""
    client = db.session.query(User).filter_by(id=client_id, role=ROLE_CLIENT).first()
    if not client or client.org_id not in get_org_tree_ids(admin_org_id):
        _log_cross_tenant_attempt(f"Client {client_id} outside tree of {admin_org_id}", admin_org_id)
        raise TenantAccessError("Client not found")
    return client


def validate_org_active(org_id: int) -> Organization:
    org = db.session.query(Organization).filter_by(id=org_id).first()

    if not org:
        raise TenantAccessError("Organization not found")

    if not org.is_active:
        raise TenantAccessError("Organization is not active")

    return org


def _log_cross_tenant_attempt(reason: str, org_id: int | None = None) -> None:
    user = getattr(g, 'current_user', None) if has_request_context() else None
    logger.warning(
        "Cross-tenant access denied: %s (user_id=%s org_id=%s path=%s)",
        reason,
        getattr(user, 'id', None),
        org_id,
        request.path if has_request_context() else None,
    )
