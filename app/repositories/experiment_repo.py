from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import StorageError, ValidationError
from app.models.orm.base import utcnow
from app.models.orm.experiment import ExperimentORM, ExperimentStatus

logger = structlog.get_logger(__name__)


class ExperimentRepository:
    def __init__(self, db: Session):
        """Initializes the repository with a database session."""
        self.db = db

    def list_experiments(self, flag_id: str | None = None) -> list[ExperimentORM]:
        stmt = select(ExperimentORM)
        if flag_id is not None:
            stmt = stmt.where(ExperimentORM.flag_id == flag_id)
        stmt = stmt.order_by(ExperimentORM.created_at.desc())
        return list(self.db.scalars(stmt).all())

    def get_experiment(self, experiment_id: str) -> Optional[ExperimentORM]:
        return self.db.get(ExperimentORM, experiment_id)

    def get_running_experiments(
        self, flag_id: str, exclude_id: str | None = None
    ) -> list[ExperimentORM]:
        stmt = select(ExperimentORM).where(
            ExperimentORM.flag_id == flag_id,
            ExperimentORM.status == ExperimentStatus.RUNNING,
        )
        if exclude_id is not None:
            stmt = stmt.where(ExperimentORM.id != exclude_id)
        return list(self.db.scalars(stmt.order_by(ExperimentORM.created_at)).all())

    def get_active_experiment_for_flag(self, flag_id: str) -> Optional[ExperimentORM]:
        """
        The running experiment of a flag whose date window, if any, contains now.

        Only one experiment per flag can be running (the partial unique index on
        ``flag_id`` holds that); for rows written before the index existed
        the earliest created one wins so the choice stays stable.
        """
        now = utcnow()
        for experiment in self.get_running_experiments(flag_id):
            if experiment.is_active(now):
                return experiment
        return None

    def create_experiment(self, experiment_data: dict) -> ExperimentORM:
        """
        Inserts an already validated experiment.

        Args:
            experiment_data: column values, split and dates checked by the service.
        """
        db_experiment = ExperimentORM(**experiment_data)
        try:
            self.db.add(db_experiment)
            self.db.commit()
            self.db.refresh(db_experiment)
        except IntegrityError as e:
            self.db.rollback()
            raise ValidationError(f"Database integrity error: {str(e.orig)}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Storage failure creating experiment", flag_id=experiment_data.get("flag_id"), exc_info=True)
            raise StorageError("A database error occurred during experiment creation.") from e

        return db_experiment

    def update_experiment(self, db_experiment: ExperimentORM, changes: dict) -> ExperimentORM:
        for field, value in changes.items():
            setattr(db_experiment, field, value)
        try:
            self.db.commit()
            self.db.refresh(db_experiment)
        except IntegrityError as e:
            self.db.rollback()
            raise ValidationError(f"Database integrity error: {str(e.orig)}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Storage failure updating experiment", experiment_id=db_experiment.id, exc_info=True)
            raise StorageError("A database error occurred during experiment update.") from e

        return db_experiment

    def delete_experiment(self, db_experiment: ExperimentORM) -> None:
        """Deletes the experiment; its assignments go with it (ON DELETE CASCADE)."""
        try:
            self.db.delete(db_experiment)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Storage failure deleting experiment", experiment_id=db_experiment.id, exc_info=True)
            raise StorageError("A database error occurred during experiment deletion.") from e
