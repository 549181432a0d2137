from __future__ import annotations

import logging
from typing import Any

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException, NotFound, PermissionDenied, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)

GENERIC_SERVER_ERROR_MESSAGE = "An unexpected error occurred."


class ConflictError(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The request conflicts with an existing record."
    default_code = "conflict"


class InsufficientPaymentError(ValidationError):
    default_detail = "Insufficient payment."
    default_code = "insufficient_payment"


class OrderNumberIntegrityError(APIException):
    """A stored order number of the day could not be parsed, so numbering stops."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Stored order number is malformed."
    default_code = "data_integrity_error"


def build_error_envelope(*, code: str, message: str, errors: Any, status_code: int) -> dict[str, Any]:
    return {"code": code, "message": message, "errors": errors, "status": status_code}


def _as_api_exception(exc: Exception) -> Exception:
    if isinstance(exc, Http404):
        return NotFound(*exc.args)
    if isinstance(exc, DjangoPermissionDenied):
        return PermissionDenied(*exc.args)
    return exc


def error_code(exc: Exception) -> str:
    if isinstance(exc, InsufficientPaymentError):
        return InsufficientPaymentError.default_code
    if isinstance(exc, ValidationError):
        return "validation_error"
    if isinstance(exc, APIException):
        return str(exc.default_code)
    return "internal_server_error"


def _message_and_errors(exc: APIException, data: Any) -> tuple[str, Any]:
    if isinstance(exc, InsufficientPaymentError):
        return str(exc.default_detail), data
    if isinstance(exc, ValidationError):
        return "Validation failed.", data
    if isinstance(data, dict) and set(data) == {"detail"}:
        return str(data["detail"]), None
    return str(exc.detail), data


def custom_exception_handler(exc: Exception, context: dict[str, Any]) -> Response:
    """Render every API error as `{code, message, errors, status}`.

    Server errors never echo the exception text back to the client.
    """
    exc = _as_api_exception(exc)
    response = drf_exception_handler(exc, context)
    view_name = type(context["view"]).__name__ if context.get("view") else "unknown"

    if response is None:
        logger.exception("Unhandled API exception in %s", view_name, exc_info=exc)
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        envelope = build_error_envelope(
            code="internal_server_error",
            message=GENERIC_SERVER_ERROR_MESSAGE,
            errors=None,
            status_code=status_code,
        )
        return Response(envelope, status=status_code)

    if response.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("Server error in %s: %s", view_name, exc, exc_info=exc)
        message, errors = GENERIC_SERVER_ERROR_MESSAGE, None
    else:
        message, errors = _message_and_errors(exc, response.data)

    response.data = build_error_envelope(
        code=error_code(exc),
        message=message,
        errors=errors,
        status_code=response.status_code,
    )
    return response
