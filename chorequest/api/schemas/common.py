"""
Response envelopes shared by every route.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from chorequest.models.base import utc_now


class APIResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)


class ErrorResponse(BaseModel):
    """Body of every non-2xx response."""
    success: bool = False
    error: str
    error_code: str
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)


def error_body(message: str, code: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """JSON-ready error envelope."""
    body = ErrorResponse(error=message, error_code=code, details=details or {})
    return jsonable_encoder(body.model_dump())


class HealthCheckResponse(BaseModel):
    status: str = "healthy"
    version: str
    environment: str
    database: str = "healthy"
    scheduler: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=utc_now)
