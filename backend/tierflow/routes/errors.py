# Overview: Maps domain exceptions raised under a blueprint to JSON error responses.

from flask import current_app, jsonify
from werkzeug.exceptions import HTTPException

from ..errors import PurchaseRequestError
from ..extensions import db


def register_error_handlers(bp) -> None:
    """
    Attach the shared handlers to a blueprint.

    Domain errors carry their own status code and body; anything else is
    logged with its traceback and answered with a generic 500.
    """

    @bp.errorhandler(PurchaseRequestError)
    def handle_domain_error(e: PurchaseRequestError):
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code

    @bp.errorhandler(Exception)
    def handle_unexpected_error(e: Exception):
        if isinstance(e, HTTPException):
            return e
        db.session.rollback()
        current_app.logger.exception("Unhandled error in %s", bp.name)
        return jsonify({"error": "Internal server error"}), 500
