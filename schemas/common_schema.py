# common_schema.py
from pydantic import BaseModel
from typing import Any, Optional


class ApiResponse(BaseModel):
    """{success, error?, data?} envelope returned by every account and admin route."""
    success: bool
    error: Optional[str] = None
    message: Optional[str] = None
    data: Optional[Any] = None
