from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.models.orm.assignment import Variant


class EvaluationResult(BaseModel):
    """
    Outcome of evaluating a flag for one user.

    Serialized in camelCase (``flagEnabled``, ``experimentName``) for the
    dashboard; ``variant`` and ``experiment_name`` are only set when the
    flag is enabled and a running experiment bucketed the user.
    """

    flag_enabled: bool
    variant: Optional[Variant] = Field(None, description="'A' or 'B'.")
    experiment_name: Optional[str] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
