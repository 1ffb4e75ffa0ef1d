from pydantic import BaseModel
from typing import Optional, Any, Literal

class ErrorResponse(BaseModel):
    """
    Standard error response structure.
    """
    error: str
    code: str
    details: Optional[Any] = None

class WebhookAck(BaseModel):
    """
    Acknowledgement returned to the billing processor.
    """
    received: bool = True
    event_id: Optional[str] = None
    event_type: str
    status: Literal["processed", "duplicate", "ignored", "failed"]
