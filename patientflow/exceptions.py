"""
Unified exception hierarchy.

Every business error extends BaseAppException and carries:
- type:        error family (validation_error / not_found / block / upstream)
- code:        machine-readable code (INVALID_TRANSITION / PAYMENT_REQUIRED / ...)
- message:     human-readable description, naming the gate that failed
- detail:      optional extra payload (dict / list / None)
- http_status: HTTP status code
- retryable:   whether a caller may retry the same operation unchanged

Services and the orchestrator only raise; exception_handler formats responses.
"""


class BaseAppException(Exception):
    """Base class for all business exceptions."""

    type = 'error'
    code = 'UNKNOWN_ERROR'
    http_status = 500
    retryable = False

    def __init__(self, message, code=None, detail=None, http_status=None):
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        self.detail = detail
        super().__init__(message)


class ValidationFailed(BaseAppException):
    """Input missing or malformed, or a record invariant would break. 400."""

    type = 'validation_error'
    code = 'VALIDATION_ERROR'
    http_status = 400


class NotFound(BaseAppException):
    """Referenced record does not exist. 404."""

    type = 'not_found'
    code = 'NOT_FOUND'
    http_status = 404


class BlockError(BaseAppException):
    """A workflow rule blocks the operation. 409."""

    type = 'block'
    code = 'BUSINESS_BLOCK'
    http_status = 409


class InvalidTransition(BlockError):
    """Target status is not a valid successor of the current status."""

    code = 'INVALID_TRANSITION'


class StaleTransition(BlockError):
    """
    The record moved on since the caller read it.

    Raised when an expected status does not match, or when the
    compare-and-set write loses a race against another writer.
    """

    code = 'STALE_TRANSITION'


class PaymentRequired(BlockError):
    """A payment-gated step was attempted before the service was paid. 402."""

    code = 'PAYMENT_REQUIRED'
    http_status = 402

    def __init__(self, category, message=None, code=None, detail=None, http_status=None):
        self.category = category
        super().__init__(
            message or f"payment required for {category}",
            code=code,
            detail=detail if detail is not None else {'service_category': category},
            http_status=http_status,
        )


class UpstreamUnavailable(BaseAppException):
    """Record store or lock did not answer in time. Safe to retry. 503."""

    type = 'upstream'
    code = 'UPSTREAM_UNAVAILABLE'
    http_status = 503
    retryable = True
