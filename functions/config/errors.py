"""Gracemark error handling.

Custom exceptions and error codes for quote normalization, currency
conversion, reconciliation and the acid test.
"""

from typing import Optional, Dict, Any


# Error Codes
class ErrorCode:
    """Error code constants."""

    # Validation Errors (1xxx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_FIELD = "INVALID_FIELD"
    INVALID_QUOTE_ID = "INVALID_QUOTE_ID"

    # Upstream Provider Errors (2xxx)
    UPSTREAM_API_ERROR = "UPSTREAM_API_ERROR"
    UPSTREAM_TIMEOUT = "UPSTREAM_TIMEOUT"
    UPSTREAM_INVALID_RESPONSE = "UPSTREAM_INVALID_RESPONSE"

    # Currency Errors (3xxx)
    CURRENCY_CONVERSION_FAILED = "CURRENCY_CONVERSION_FAILED"
    CURRENCY_RATE_UNAVAILABLE = "CURRENCY_RATE_UNAVAILABLE"

    # Reconciliation Errors (4xxx)
    RECONCILIATION_INVALID_PHASE = "RECONCILIATION_INVALID_PHASE"
    ENHANCEMENT_FAILED = "ENHANCEMENT_FAILED"

    # Firestore Errors (5xxx)
    FIRESTORE_ERROR = "FIRESTORE_ERROR"
    QUOTE_NOT_FOUND = "QUOTE_NOT_FOUND"
    FIRESTORE_WRITE_FAILED = "FIRESTORE_WRITE_FAILED"

    # LLM Errors (6xxx)
    LLM_ERROR = "LLM_ERROR"
    LLM_RATE_LIMIT = "LLM_RATE_LIMIT"
    LLM_CONTEXT_TOO_LONG = "LLM_CONTEXT_TOO_LONG"


class GracemarkError(Exception):
    """Base exception for Gracemark errors.

    Provides structured error information for API responses.

    Attributes:
        code: Error code from ErrorCode constants
        message: Human-readable error message
        details: Additional error context
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for API response."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class ValidationError(GracemarkError):
    """Validation-specific error."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict] = None,
        code: str = ErrorCode.VALIDATION_ERROR
    ):
        super().__init__(
            code=code,
            message=message,
            details={**(details or {}), "field": field} if field else details
        )
        self.field = field


class UpstreamError(GracemarkError):
    """A partner or provider API answered with a non-OK status."""

    def __init__(
        self,
        message: str,
        status_code: int,
        service: str,
        body: Optional[str] = None,
        details: Optional[Dict] = None
    ):
        super().__init__(
            code=ErrorCode.UPSTREAM_API_ERROR,
            message=message,
            details={
                **(details or {}),
                "service": service,
                "status_code": status_code,
            }
        )
        self.status_code = status_code
        self.service = service
        self.body = body


class ConversionError(GracemarkError):
    """Currency conversion failed for every configured rate provider."""

    def __init__(
        self,
        message: str,
        source_currency: str,
        target_currency: str,
        details: Optional[Dict] = None
    ):
        super().__init__(
            code=ErrorCode.CURRENCY_CONVERSION_FAILED,
            message=message,
            details={
                **(details or {}),
                "source_currency": source_currency,
                "target_currency": target_currency,
            }
        )
        self.source_currency = source_currency
        self.target_currency = target_currency


class ReconciliationError(GracemarkError):
    """A reconciliation phase was entered out of order."""

    def __init__(
        self,
        message: str,
        phase: str,
        details: Optional[Dict] = None
    ):
        super().__init__(
            code=ErrorCode.RECONCILIATION_INVALID_PHASE,
            message=message,
            details={**(details or {}), "phase": phase}
        )
        self.phase = phase
