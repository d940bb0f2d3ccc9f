"""Generic API response schemas"""

from pydantic import BaseModel
from typing import Optional, Any, Dict


class OkResponse(BaseModel):
    """Generic API success response"""
    ok: bool = True


class ErrorResponse(BaseModel):
    """Generic API error response"""
    ok: bool = False
    error: str
    details: Optional[Dict[str, Any]] = None
    path: Optional[str] = None
    timestamp: Optional[str] = None
