from __future__ import annotations

import logging
from typing import Any

from rest_framework import status
from rest_framework.response import Response


logger = logging.getLogger(__name__)


def ok(
    data: Any = None,
    *,
    message: str = "",
    success: bool = True,
    http_status: int = status.HTTP_200_OK,
    **extra,
) -> Response:
    body: dict[str, Any] = {"success": success}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return Response(body, status=http_status)


def fail(message: str, *, error: Any = None, http_status: int = status.HTTP_400_BAD_REQUEST) -> Response:
    body: dict[str, Any] = {"success": False, "message": message}
    if error is not None:
        body["error"] = error
    return Response(body, status=http_status)


def server_error(message: str, exc: Exception) -> Response:
    """500 with the raw error text, after logging the traceback."""

    logger.exception("verification.unhandled_error", extra={"summary": message})
    return fail(message, error=str(exc), http_status=status.HTTP_500_INTERNAL_SERVER_ERROR)
