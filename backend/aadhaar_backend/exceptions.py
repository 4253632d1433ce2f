from __future__ import annotations

import logging
from typing import Any

from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler, set_rollback


logger = logging.getLogger(__name__)


def _first_message(detail: Any) -> str:
    if isinstance(detail, dict):
        for value in detail.values():
            message = _first_message(value)
            if message:
                return message
        return ""
    if isinstance(detail, (list, tuple)):
        for item in detail:
            message = _first_message(item)
            if message:
                return message
        return ""
    return str(detail or "")


def envelope_exception_handler(exc, context):
    """Wraps DRF error responses in the `{success, message, error}` envelope.

    Anything DRF does not map itself becomes a 500 carrying the raw error text.
    """

    response = exception_handler(exc, context)
    if response is None:
        view = context.get("view")
        logger.exception(
            "api.unhandled_error",
            extra={"view": type(view).__name__ if view is not None else None},
        )
        set_rollback()
        return Response(
            {"success": False, "message": "Internal server error", "error": str(exc)},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if isinstance(exc, exceptions.ValidationError):
        response.data = {
            "success": False,
            "message": _first_message(exc.detail) or "Invalid request",
            "error": exc.detail,
        }
        return response

    code = str(getattr(exc, "default_code", "") or "error")
    response.data = {
        "success": False,
        "message": _first_message(response.data) or code,
        "error": code.replace("_", " ").capitalize(),
    }
    return response
