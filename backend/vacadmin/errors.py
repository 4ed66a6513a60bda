# Overview: Typed service failures shared by every state machine and the API layer.

"""
Service error taxonomy.

Services raise these; routes translate them into JSON responses with the
status code carried on the class. Nothing here is fatal to the process:
a raised error means the surrounding transaction was rolled back and every
aggregate is still in its prior state.
"""

from __future__ import annotations

from flask import jsonify


class ServiceError(Exception):
    """Base class for recoverable operation failures."""
    status_code = 400
    code = "ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationError(ServiceError):
    """400-level input problem."""
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(ServiceError):
    """Referenced order, line, product, request or user does not exist."""
    status_code = 404
    code = "NOT_FOUND"


class InvalidStateError(ServiceError):
    """Transition is illegal from the aggregate's current status."""
    status_code = 409
    code = "INVALID_STATE"


class InsufficientStockError(ServiceError):
    """A decrement would drive on-hand stock below zero."""
    status_code = 409
    code = "INSUFFICIENT_STOCK"


class EmptyOrderError(ServiceError):
    """Confirming a sale that has no lines."""
    status_code = 400
    code = "EMPTY_ORDER"


class ForbiddenError(ServiceError):
    """Actor's role does not permit the direct transition."""
    status_code = 403
    code = "FORBIDDEN"


class ConflictError(ServiceError):
    """Duplicate of something that must be unique (open request, order number)."""
    status_code = 409
    code = "CONFLICT"


def error_response(exc: ServiceError):
    return jsonify(exc.to_dict()), exc.status_code
