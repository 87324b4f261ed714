# services/evaluation_service.py
import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, StorageError
from app.models.orm.assignment import AssignmentORM, Variant
from app.models.orm.experiment import ExperimentORM
from app.models.orm.user import UserORM
from app.models.schemas.evaluation import EvaluationResult
from app.repositories.assignment_repo import AssignmentRepository
from app.repositories.experiment_repo import ExperimentRepository
from app.repositories.flag_repo import FlagRepository
from app.repositories.user_repo import UserRepository
from app.services.bucketing import assign_variant, compute_bucket

logger = structlog.get_logger(__name__)


def bucket_user(experiment: ExperimentORM, user: UserORM) -> Variant:
    """First-time variant for a user, derived from the experiment's current split."""
    return assign_variant(
        compute_bucket(experiment.id, user.id), experiment.variant_a_percentage
    )


def get_or_assign(
    assignment_repo: AssignmentRepository, experiment: ExperimentORM, user: UserORM
) -> AssignmentORM:
    return assignment_repo.get_or_create(
        experiment.id, user.id, lambda: bucket_user(experiment, user)
    )


class EvaluationService:
    def __init__(self, db: Session):
        self.flag_repo = FlagRepository(db)
        self.experiment_repo = ExperimentRepository(db)
        self.user_repo = UserRepository(db)
        self.assignment_repo = AssignmentRepository(db)
        self.db = db

    def evaluate(self, flag_ref: str, external_user_id: str) -> EvaluationResult:
        """
        Decides which variant of a flag a user sees.

        1. Look the flag up (key first, then id).
        2. Disabled flags stop here, without touching users or assignments.
        3. Find the flag's running experiment; without one there is no variant.
        4. Make sure the user exists.
        5. Return the stored assignment, bucketing the user on first sight.

        Either a complete result is returned or an error is raised.
        """
        try:
            flag = self.flag_repo.get_by_id_or_key(flag_ref)
            if flag is None:
                raise NotFoundError(f"Feature flag {flag_ref} not found.")

            if not flag.enabled:
                return EvaluationResult(flag_enabled=False)

            experiment = self.experiment_repo.get_active_experiment_for_flag(flag.id)
            if experiment is None:
                return EvaluationResult(flag_enabled=True)

            user = self.user_repo.ensure_user(external_user_id)
            assignment = get_or_assign(self.assignment_repo, experiment, user)

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Storage failure evaluating flag",
                flag=flag_ref,
                user_id=external_user_id,
                exc_info=True,
            )
            raise StorageError("Database error while evaluating the flag.") from e

        logger.debug(
            "Evaluated flag",
            flag_key=flag.key,
            user_id=external_user_id,
            experiment_id=experiment.id,
            variant=assignment.variant.value,
        )
        return EvaluationResult(
            flag_enabled=True,
            variant=assignment.variant,
            experiment_name=experiment.name,
        )
