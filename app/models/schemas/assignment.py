from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.orm.assignment import Variant


class AssignedUserModel(BaseModel):
    """The user side of an assignment, as shown in the assignment listing."""

    id: str
    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class AssignmentModel(BaseModel):
    """Data model for a persistent user assignment record."""

    id: str
    experiment_id: str
    user_id: str = Field(..., description="Internal id of the assigned user.")
    variant: Variant = Field(..., description="The variant the user was assigned.")
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AssignmentWithUserModel(AssignmentModel):
    user: Optional[AssignedUserModel] = None
