from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class FeatureFlagCreateModel(BaseModel):
    key: str = Field(..., min_length=1, description="Unique, stable identifier used by callers.")
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    enabled: bool = False


class FeatureFlagUpdateModel(BaseModel):
    # The key is immutable once created
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    enabled: Optional[bool] = None


class FeatureFlagResponseModel(BaseModel):
    id: str
    key: str
    name: str
    description: Optional[str] = None
    enabled: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
