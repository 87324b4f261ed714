from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class UserCreateModel(BaseModel):
    """Schema for creating a new User (API Input)."""

    # Generated from the internal id when left out
    user_id: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = None
    name: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict, description="Flexible JSON object.")


class UserUpdateModel(BaseModel):
    email: Optional[str] = None
    name: Optional[str] = None
    attributes: Optional[Dict[str, Any]] = None


class UserResponseModel(BaseModel):
    id: str
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
