# profile_schema.py
from pydantic import BaseModel, ConfigDict
from typing import Optional


class ResidentOption(BaseModel):
    """Entry of the successor picker."""
    id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    apartment_number: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
