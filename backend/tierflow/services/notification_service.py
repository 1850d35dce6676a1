# Overview: Fire-and-forget dispatch of purchase-request decision events.

"""
Decision events for the notification collaborator.

The transfer engine calls publish_request_decided() only after its transaction
has committed. Each subscriber runs in isolation: an exception in one is logged
and swallowed here so it can neither undo the decision nor stop the other
subscribers. Delivery over email/WhatsApp/push is someone else's job; the
built-in subscriber only leaves an in-app Notification row for the client.

Subscribe with:
    from tierflow.services.notification_service import request_decided

    @request_decided.connect
    def forward(sender, event):
        ...
"""

from __future__ import annotations

import logging

from blinker import Namespace

from ..extensions import db
from ..models import Notification


logger = logging.getLogger(__name__)

EVENT_REQUEST_APPROVED = "purchase_request_approved"
EVENT_REQUEST_REJECTED = "purchase_request_rejected"

_signals = Namespace()

# Sent with event=dict(type, request_id, client_id, product_name, quantity, reason?, actor_id)
request_decided = _signals.signal("purchase-request-decided")


def build_event(event_type: str, purchase_request, actor_id: int | None, reason: str | None = None) -> dict:
    event = {
        "type": event_type,
        "request_id": purchase_request.id,
        "client_id": purchase_request.client_id,
        "product_name": purchase_request.product_name,
        "quantity": purchase_request.quantity,
        "actor_id": actor_id,
    }
    if reason is not None:
        event["reason"] = reason
    return event


def publish_request_decided(event: dict, sender=None) -> int:
    """
    Deliver event to every subscriber, isolating failures.

    Returns the number of subscribers that raised.
    """
    failures = 0
    for receiver in list(request_decided.receivers_for(sender)):
        try:
            receiver(sender, event=event)
        except Exception:
            failures += 1
            logger.exception(
                "Notification subscriber %r failed for %s (request %s)",
                receiver, event.get("type"), event.get("request_id"),
            )
    return failures


def store_in_app_notification(sender, event: dict) -> Notification:
    """Default subscriber: persist an in-app notification for the client, in its own transaction."""
    if event["type"] == EVENT_REQUEST_APPROVED:
        title = "Purchase Request Approved"
        message = (
            f"Your request for {event['quantity']} units of {event['product_name']} "
            f"has been approved and added to your inventory."
        )
    else:
        title = "Purchase Request Rejected"
        message = f"Your purchase request for {event['product_name']} was rejected: {event.get('reason')}"

    notification = Notification(
        recipient_user_id=event["client_id"],
        sender_user_id=event.get("actor_id"),
        type=event["type"],
        title=title,
        message=message,
        related_request_id=event["request_id"],
    )
    try:
        db.session.add(notification)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return notification


def list_notifications(user_id: int, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    query = db.session.query(Notification).filter_by(recipient_user_id=user_id)
    if unread_only:
        query = query.filter_by(is_read=False)
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def init_app(app) -> None:
    """Wire the built-in subscriber. Safe to call for every app instance."""
    request_decided.connect(store_in_app_notification)
    app.logger.debug("In-app notification subscriber connected")
