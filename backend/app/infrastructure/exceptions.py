"""
Custom Exceptions for Crudo

Hierarchical exception classes for proper error handling across layers.
Each class carries the HTTP status the API layer renders it with.
"""

from typing import Optional, Dict, Any


class CrudoError(Exception):
    """Base exception for all Crudo errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        body: Dict[str, Any] = {
            "error": self.__class__.__name__,
            "message": self.message,
        }
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(CrudoError):
    """Raised when input validation fails."""

    status_code = 400


class DatabaseError(CrudoError):
    """Raised when database operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table
        super().__init__(message, details, original_error)


class NotFoundError(CrudoError):
    """Raised when a requested resource is not found."""

    status_code = 404


class UpstreamServiceError(CrudoError):
    """
    Raised when a vendor API (WhatsApp, Stripe, OpenAI, Brevo) fails.

    ``status_code`` mirrors the vendor's HTTP status when one is known,
    otherwise the error renders as 500.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message, details, original_error)
        if status_code and 400 <= status_code < 600:
            self.status_code = status_code


class WhatsAppAPIError(UpstreamServiceError):
    """Raised when the WhatsApp Cloud API rejects a request."""
    pass


class StripeServiceError(UpstreamServiceError):
    """Raised when a Stripe call fails."""
    pass


class TranscriptionError(UpstreamServiceError):
    """Raised when audio transcription fails."""
    pass


class TemplateExtractionError(UpstreamServiceError):
    """Raised when the LLM response cannot be turned into template data."""
    pass


class EmailDeliveryError(UpstreamServiceError):
    """Raised when the transactional email provider rejects a send."""
    pass


class ConfigurationError(CrudoError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(message, details, original_error)
