# services/experiment_service.py
import math

import structlog
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, ValidationError
from app.models.orm.assignment import AssignmentORM
from app.models.orm.base import to_naive_utc
from app.models.orm.experiment import ExperimentORM, ExperimentStatus
from app.models.schemas.experiment import ExperimentCreateModel, ExperimentUpdateModel
from app.repositories.assignment_repo import AssignmentRepository
from app.repositories.experiment_repo import ExperimentRepository
from app.repositories.flag_repo import FlagRepository
from app.repositories.user_repo import UserRepository
from app.services.evaluation_service import get_or_assign

logger = structlog.get_logger(__name__)

# Columns that may not be cleared by sending null
_REQUIRED_FIELDS = {"name", "variant_a_percentage", "variant_b_percentage", "status"}


def validate_split(variant_a_percentage: float, variant_b_percentage: float) -> None:
    """Both shares in [0, 100] and adding up to exactly 100."""
    for label, value in (("A", variant_a_percentage), ("B", variant_b_percentage)):
        if value is None or math.isnan(value) or not 0 <= value <= 100:
            raise ValidationError(
                f"Variant {label} percentage must be between 0 and 100. Got: {value}"
            )

    total = variant_a_percentage + variant_b_percentage
    if not math.isclose(total, 100.0, abs_tol=1e-9):
        raise ValidationError(f"Variant percentages must total 100%. Got: {total}%")


class ExperimentService:
    def __init__(self, db: Session):
        self.assignment_repo = AssignmentRepository(db)
        self.experiment_repo = ExperimentRepository(db)
        self.flag_repo = FlagRepository(db)
        self.user_repo = UserRepository(db)
        self.db = db

    def list_experiments(self) -> list[ExperimentORM]:
        return self.experiment_repo.list_experiments()

    def list_experiments_for_flag(self, flag_ref: str) -> list[ExperimentORM]:
        flag = self.flag_repo.get_by_id_or_key(flag_ref)
        if flag is None:
            raise NotFoundError(f"Feature flag {flag_ref} not found.")
        return self.experiment_repo.list_experiments(flag_id=flag.id)

    def get_experiment(self, experiment_id: str) -> ExperimentORM:
        experiment = self.experiment_repo.get_experiment(experiment_id)
        if experiment is None:
            raise NotFoundError(f"Experiment {experiment_id} not found.")
        return experiment

    def _check_single_running(self, flag_id: str, status: ExperimentStatus, experiment_id: str | None = None):
        if status != ExperimentStatus.RUNNING:
            return
        others = self.experiment_repo.get_running_experiments(flag_id, exclude_id=experiment_id)
        if others:
            raise ValidationError(
                f"Flag already has a running experiment ({others[0].name}). "
                "Pause or complete it first."
            )

    @staticmethod
    def _check_dates(start_date, end_date):
        if start_date is not None and end_date is not None and start_date > end_date:
            raise ValidationError("start_date must not be after end_date.")

    def create_experiment(self, experiment_data: ExperimentCreateModel) -> ExperimentORM:
        """
        Validates and stores a new experiment.

        The flag must exist, the split must add up to 100 and a flag can only
        have one running experiment at a time.
        """
        flag = self.flag_repo.get_by_id_or_key(experiment_data.flag_id)
        if flag is None:
            raise NotFoundError(f"Feature flag {experiment_data.flag_id} not found.")

        experiment_dict = experiment_data.model_dump()
        experiment_dict["flag_id"] = flag.id
        experiment_dict["start_date"] = to_naive_utc(experiment_dict["start_date"])
        experiment_dict["end_date"] = to_naive_utc(experiment_dict["end_date"])

        validate_split(experiment_dict["variant_a_percentage"], experiment_dict["variant_b_percentage"])
        self._check_dates(experiment_dict["start_date"], experiment_dict["end_date"])
        self._check_single_running(flag.id, experiment_dict["status"])

        experiment = self.experiment_repo.create_experiment(experiment_dict)
        logger.info(
            "Created experiment",
            experiment_id=experiment.id,
            name=experiment.name,
            flag_key=flag.key,
            variant_a_percentage=experiment.variant_a_percentage,
            variant_b_percentage=experiment.variant_b_percentage,
        )
        return experiment

    def update_experiment(self, experiment_id: str, experiment_data: ExperimentUpdateModel) -> ExperimentORM:
        """
        Applies a partial update after re-validating the merged experiment.

        Existing assignments are never touched: users already bucketed keep
        their variant even when the split changes. A completed experiment can
        not be moved back to another status.
        """
        experiment = self.get_experiment(experiment_id)

        changes = {
            field: value
            for field, value in experiment_data.model_dump(exclude_unset=True).items()
            if value is not None or field not in _REQUIRED_FIELDS
        }
        for field in ("start_date", "end_date"):
            if field in changes:
                changes[field] = to_naive_utc(changes[field])

        merged = {
            field: changes.get(field, getattr(experiment, field))
            for field in ("variant_a_percentage", "variant_b_percentage", "status", "start_date", "end_date")
        }

        validate_split(merged["variant_a_percentage"], merged["variant_b_percentage"])
        self._check_dates(merged["start_date"], merged["end_date"])

        if experiment.status == ExperimentStatus.COMPLETED and merged["status"] != ExperimentStatus.COMPLETED:
            raise ValidationError("A completed experiment can not be restarted.")
        self._check_single_running(experiment.flag_id, merged["status"], experiment_id=experiment.id)

        if "status" in changes and changes["status"] != experiment.status:
            logger.info(
                "Experiment status changed",
                experiment_id=experiment.id,
                old_status=experiment.status.value,
                new_status=changes["status"].value,
            )
        return self.experiment_repo.update_experiment(experiment, changes)

    def delete_experiment(self, experiment_id: str) -> None:
        experiment = self.get_experiment(experiment_id)
        self.experiment_repo.delete_experiment(experiment)
        logger.info("Deleted experiment and its assignments", experiment_id=experiment_id)

    def get_assignments(self, experiment_id: str) -> list[AssignmentORM]:
        self.get_experiment(experiment_id)
        return self.assignment_repo.get_assignments_for_experiment(experiment_id)

    def assign_user(self, experiment_id: str, user_ref: str) -> AssignmentORM:
        """
        Admin assignment of a user to an experiment, whatever its status.

        Uses the same bucketing and first-write-wins storage as evaluation, so
        a user assigned here sees the same variant when the flag is evaluated.
        """
        experiment = self.get_experiment(experiment_id)
        # The dashboard passes either id here
        user = self.user_repo.get_by_any_id(user_ref) or self.user_repo.ensure_user(user_ref)
        return get_or_assign(self.assignment_repo, experiment, user)
