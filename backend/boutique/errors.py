# Overview: Error taxonomy shared by services and routes.

"""
Service errors carry an HTTP status and optional machine-usable details.

Routes catch ServiceError and hand it to error_response(); anything else is
an unexpected failure, logged server-side and reported generically.
"""

from __future__ import annotations

from flask import current_app, jsonify


class ServiceError(Exception):
    status_code = 400
    kind = "error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"message": self.message, "error": self.kind}
        body.update(self.details)
        return body


class ValidationError(ServiceError, ValueError):
    """400-level input problem."""
    kind = "validation_error"


class InvalidQuantity(ValidationError):
    kind = "invalid_quantity"


class NotFoundError(ServiceError):
    status_code = 404
    kind = "not_found"


class InsufficientStock(ServiceError):
    status_code = 409
    kind = "insufficient_stock"

    def __init__(self, product_id: int, available: int, required: int, product_name: str | None = None):
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}: available {available}, required {required}",
            {"product_id": product_id, "available": available, "required": required},
        )


class InvalidStateError(ServiceError):
    status_code = 409
    kind = "invalid_state"


class AlreadyCancelled(InvalidStateError):
    kind = "already_cancelled"


class ConflictError(ServiceError, ValueError):
    """409-level business rule conflict (e.g., duplicate name and size)."""
    status_code = 409
    kind = "conflict"


class OverPayment(ServiceError):
    kind = "overpayment"


class ExceedsCredit(ServiceError):
    kind = "exceeds_credit"


class AuthenticationError(ServiceError):
    status_code = 401
    kind = "authentication_error"


class PermissionDenied(ServiceError):
    status_code = 403
    kind = "permission_denied"


def error_response(exc: ServiceError):
    return jsonify(exc.to_dict()), exc.status_code


def unexpected_error_response(exc: Exception, action: str):
    """Log an unexpected failure and build the generic 500 body."""
    current_app.logger.exception("Failed to %s", action)
    body = {"message": "Internal server error", "error": "unexpected"}
    if current_app.config.get("EXPOSE_ERROR_DETAILS"):
        body["detail"] = str(exc)
    return jsonify(body), 500
