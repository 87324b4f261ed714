from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.orm.experiment import ExperimentStatus


class ExperimentCreateModel(BaseModel):
    """Schema for creating a new Experiment (API Input)."""

    flag_id: str
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    variant_a_percentage: float = Field(
        50.0,
        ge=0.0,
        le=100.0,
        description="Percentage of traffic bucketed into variant A.",
    )
    variant_b_percentage: float = Field(
        50.0,
        ge=0.0,
        le=100.0,
        description="Percentage of traffic bucketed into variant B.",
    )
    status: ExperimentStatus = ExperimentStatus.DRAFT
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class ExperimentUpdateModel(BaseModel):
    """Partial update; only the fields that were sent are applied."""

    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    variant_a_percentage: Optional[float] = Field(None, ge=0.0, le=100.0)
    variant_b_percentage: Optional[float] = Field(None, ge=0.0, le=100.0)
    status: Optional[ExperimentStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class ExperimentResponseModel(BaseModel):
    id: str
    flag_id: str
    name: str
    description: Optional[str] = None
    variant_a_percentage: float
    variant_b_percentage: float
    status: ExperimentStatus
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
