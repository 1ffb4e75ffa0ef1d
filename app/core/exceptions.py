from typing import Optional, Any

class CobraError(Exception):
    """
    Base exception for CobraYa application.
    """
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500, details: Optional[Any] = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)

class InvalidSignatureError(CobraError):
    """
    Raised when an inbound billing webhook fails signature verification.
    Nothing is claimed and no effect runs.
    """
    def __init__(self, message: str = "Invalid webhook signature", details: Optional[Any] = None):
        super().__init__(message, code="INVALID_SIGNATURE", status_code=400, details=details)

class ValidationError(CobraError):
    """
    Raised when input validation fails.
    """
    def __init__(self, message: str = "Validation error", details: Optional[Any] = None):
        super().__init__(message, code="VALIDATION_ERROR", status_code=422, details=details)

class StoreUnavailableError(CobraError):
    """
    Raised when the durable store cannot record a billing event claim.
    The processor retries on a 503.
    """
    def __init__(self, message: str = "Store unavailable", details: Optional[Any] = None):
        super().__init__(message, code="STORE_UNAVAILABLE", status_code=503, details=details)

class ExternalServiceError(CobraError):
    """
    Raised when an external service (e.g., Stripe, Twilio) fails.
    """
    def __init__(self, message: str = "External service error", details: Optional[Any] = None):
        super().__init__(message, code="EXTERNAL_SERVICE_ERROR", status_code=502, details=details)
