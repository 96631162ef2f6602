"""
Error taxonomy for the quote → hub → job → payment pipeline.

Exception Hierarchy:
    RoutingError (base)
    ├── InvalidInputError        - malformed request, caller can correct it
    ├── UnsupportedMaterialError - material not offered for the part (strict mode)
    ├── HubIncompatibleError     - chosen hub is not in the eligible set
    ├── QuoteExpiredError        - quote past its valid_until, re-quote
    ├── NotFoundError            - unknown catalog part / hub / quote
    │   └── JobNotFoundError     - unknown job, or a job owned by someone else
    ├── InvalidTransitionError   - job state machine rejected the change
    ├── PaymentMismatchError     - gateway amount/currency differs from the quote
    ├── PaymentConflictError     - same reference reported with two statuses
    ├── ConflictError            - optimistic concurrency lost after all retries
    ├── DataUnavailableError     - persistence layer unreachable
    └── PaymentGatewayError      - gateway call failed or was rejected

Every error is scoped to one request/job. Routers never catch these; the
handler registered in main.py renders them with their http_status.
"""

from typing import Any, Dict, Optional


class RoutingError(Exception):
    """Base exception — catch this to handle any pipeline error."""

    http_status = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> dict:
        return {
            "detail": self.message,
            "error": type(self).__name__,
            "details": self.details,
        }


# =============================================================================
# BUSINESS-RULE REJECTIONS — surfaced to the user, never retried
# =============================================================================

class InvalidInputError(RoutingError):
    http_status = 400


class UnsupportedMaterialError(RoutingError):
    http_status = 422


class HubIncompatibleError(RoutingError):
    http_status = 422


class QuoteExpiredError(RoutingError):
    http_status = 410


class NotFoundError(RoutingError):
    http_status = 404


class JobNotFoundError(NotFoundError):
    pass


class InvalidTransitionError(RoutingError):
    """The job state machine does not allow this change from the current status."""

    http_status = 409


# =============================================================================
# INTEGRITY VIOLATIONS — surfaced to operators, job left untouched
# =============================================================================

class PaymentMismatchError(RoutingError):
    """Gateway-verified amount or currency does not match the job's quote."""

    http_status = 409


class PaymentConflictError(RoutingError):
    """
    A reference was already committed with a different terminal status.

    Never resolved automatically — the first committed status stands until an
    operator looks at the gateway dashboard.
    """

    http_status = 409


# =============================================================================
# PERSISTENCE / COLLABORATOR FAILURES
# =============================================================================

class ConflictError(RoutingError):
    """Lost the compare-and-set race on every retry."""

    http_status = 409


class DataUnavailableError(RoutingError):
    http_status = 503


class PaymentGatewayError(RoutingError):
    http_status = 502
