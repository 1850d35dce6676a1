# Overview: In-app notifications left for the caller by purchase request decisions.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..services import notification_service
from ..validation import coerce_positive_int
from .errors import register_error_handlers


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")
register_error_handlers(notifications_bp)


@notifications_bp.get("")
@require_auth
def list_notifications():
    """
    Query params:
        unread_only: "true" to hide read notifications
        limit: optional, default 50, max 200
    """
    unread_only = request.args.get("unread_only", "").lower() in ("1", "true", "yes")
    limit = request.args.get("limit")
    limit = min(coerce_positive_int(limit, "limit"), 200) if limit else 50

    notifications = notification_service.list_notifications(
        g.current_user.id, unread_only=unread_only, limit=limit,
    )
    return jsonify({
        "notifications": [n.to_dict() for n in notifications],
        "count": len(notifications),
    }), 200
