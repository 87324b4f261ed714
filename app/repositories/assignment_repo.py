# repositories/assignment_repo.py
from typing import Callable, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.core.exceptions import DuplicateAssignment, StorageError
from app.models.orm.assignment import AssignmentORM, Variant

logger = structlog.get_logger(__name__)


class AssignmentRepository:
    """
    Persistent variant assignments, at most one per (experiment, user).

    The uniqueness lives in the ``uq_assignment_experiment_user`` constraint,
    so it holds across sessions, processes and instances. Nothing is cached
    in memory.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_assignment(
        self, experiment_id: str, user_id: str
    ) -> Optional[AssignmentORM]:
        """Retrieves a persistent assignment for a user in a specific experiment."""
        stmt = select(AssignmentORM).where(
            AssignmentORM.experiment_id == experiment_id,
            AssignmentORM.user_id == user_id,
        )
        return self.db.scalars(stmt).one_or_none()

    def get_assignments_for_experiment(self, experiment_id: str) -> list[AssignmentORM]:
        """All assignments of an experiment with their users, newest first."""
        stmt = (
            select(AssignmentORM)
            .where(AssignmentORM.experiment_id == experiment_id)
            .options(joinedload(AssignmentORM.user))
            .order_by(AssignmentORM.created_at.desc())
        )

        return list(self.db.scalars(stmt).all())

    def create_assignment(
        self, experiment_id: str, user_id: str, variant: Variant
    ) -> AssignmentORM:
        """
        Inserts a new assignment record.

        Never overwrites: if the pair is already assigned the insert fails on
        the unique constraint and ``DuplicateAssignment`` is raised.
        """
        db_assignment = AssignmentORM(
            experiment_id=experiment_id,
            user_id=user_id,
            variant=variant,
        )
        try:
            self.db.add(db_assignment)
            self.db.commit()
            self.db.refresh(db_assignment)

            return db_assignment

        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateAssignment(
                f"Assignment already exists for user {user_id} in experiment {experiment_id}."
            ) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Storage failure creating assignment",
                experiment_id=experiment_id,
                user_id=user_id,
                exc_info=True,
            )
            raise StorageError("Exception occurred during assignment creation") from e

    def get_or_create(
        self,
        experiment_id: str,
        user_id: str,
        variant_supplier: Callable[[], Variant],
    ) -> AssignmentORM:
        """
        Returns the stored assignment for the pair, creating it on first sight.

        The supplier is only called when no row exists. If another writer
        inserts the same pair first, its row wins and is returned; a second
        miss after the conflict means the database is misbehaving.
        """
        existing = self.get_assignment(experiment_id, user_id)
        if existing is not None:
            return existing

        variant = variant_supplier()
        try:
            assignment = self.create_assignment(experiment_id, user_id, variant)
        except DuplicateAssignment:
            logger.info(
                "Lost assignment race, re-reading stored variant",
                experiment_id=experiment_id,
                user_id=user_id,
            )
            winner = self.get_assignment(experiment_id, user_id)
            if winner is None:
                raise StorageError(
                    f"Assignment for user {user_id} in experiment {experiment_id} "
                    "conflicted but could not be read back."
                )
            return winner

        logger.info(
            "Assigned user to variant",
            experiment_id=experiment_id,
            user_id=user_id,
            variant=assignment.variant.value,
        )
        return assignment
