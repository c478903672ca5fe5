"""Helpers for translating engine errors into DRF responses."""

import logging

from rest_framework.response import Response

from .exceptions import CommerceError, InvariantViolation

logger = logging.getLogger("shopcore.api")


def error_response(exc: CommerceError) -> Response:
    """Render a CommerceError as `{"detail", "code"}` with its HTTP status."""

    if isinstance(exc, InvariantViolation):
        logger.error("invariant_violation", extra={"event": "invariant_violation", "detail": exc.message})
        return Response({"detail": exc.default_message, "code": exc.code}, status=exc.status_code)
    return Response({"detail": exc.message, "code": exc.code}, status=exc.status_code)
