"""
Unified exception handler.

Wired in through DRF's EXCEPTION_HANDLER setting. Clients can branch on a
single rule:
  response.type present  → something went wrong
  no type field          → success

Error envelope:
{
    "type":    "validation_error" | "not_found" | "block" | "upstream",
    "code":    "PAYMENT_REQUIRED",
    "message": "payment required for radiology",
    "detail":  { ... }  // optional
}
"""

import logging

from rest_framework.views import exception_handler as drf_default_handler
from rest_framework.exceptions import ParseError, ValidationError as DRFValidationError
from django.http import JsonResponse

from .exceptions import BaseAppException

logger = logging.getLogger(__name__)

# seconds a client should wait before retrying a 503
RETRY_AFTER_SECONDS = 1


def _envelope(type_, code, message, detail=None, status=400):
    body = {'type': type_, 'code': code, 'message': message}
    if detail is not None:
        body['detail'] = detail
    return JsonResponse(body, status=status)


def unified_exception_handler(exc, context):
    """
    DRF exception handler entry point.

    Precedence:
    1. BaseAppException and subclasses → unified envelope
    2. DRF request-parsing errors (ValidationError, ParseError) → unified envelope
    3. Anything else → DRF default handling
    """

    # --- 1. application exceptions ---
    if isinstance(exc, BaseAppException):
        response = _envelope(exc.type, exc.code, exc.message, exc.detail, exc.http_status)
        if exc.retryable:
            logger.warning("Upstream failure surfaced to client: %s (%s)", exc.message, exc.code)
            response['Retry-After'] = str(RETRY_AFTER_SECONDS)
        return response

    # --- 2. DRF parsing errors ---
    if isinstance(exc, DRFValidationError):
        return _envelope('validation_error', 'VALIDATION_ERROR', 'Request validation failed', exc.detail)
    if isinstance(exc, ParseError):
        return _envelope('validation_error', 'MALFORMED_REQUEST', str(exc.detail))

    # --- 3. everything else goes to DRF ---
    return drf_default_handler(exc, context)
