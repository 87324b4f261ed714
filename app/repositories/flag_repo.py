from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import StorageError, ValidationError
from app.models.orm.flag import FeatureFlagORM
from app.models.schemas.flag import FeatureFlagCreateModel

logger = structlog.get_logger(__name__)


class FlagRepository:
    def __init__(self, db: Session):
        """Initializes the repository with a database session."""
        self.db = db

    def list_flags(self) -> list[FeatureFlagORM]:
        stmt = select(FeatureFlagORM).order_by(FeatureFlagORM.created_at.desc())
        return list(self.db.scalars(stmt).all())

    def get_by_id(self, flag_id: str) -> Optional[FeatureFlagORM]:
        return self.db.get(FeatureFlagORM, flag_id)

    def get_by_key(self, key: str) -> Optional[FeatureFlagORM]:
        stmt = select(FeatureFlagORM).where(FeatureFlagORM.key == key)
        return self.db.scalars(stmt).one_or_none()

    def get_by_id_or_key(self, flag_ref: str) -> Optional[FeatureFlagORM]:
        """Looks the flag up by key first, then falls back to its id."""
        return self.get_by_key(flag_ref) or self.get_by_id(flag_ref)

    def create_flag(self, flag_data: FeatureFlagCreateModel) -> FeatureFlagORM:
        db_flag = FeatureFlagORM(**flag_data.model_dump())
        try:
            self.db.add(db_flag)
            self.db.commit()
            self.db.refresh(db_flag)
        except IntegrityError as e:
            self.db.rollback()
            raise ValidationError(f"A flag with key '{flag_data.key}' already exists.") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Storage failure creating flag", flag_key=flag_data.key, exc_info=True)
            raise StorageError("A database error occurred during flag creation.") from e

        return db_flag

    def update_flag(self, db_flag: FeatureFlagORM, changes: dict) -> FeatureFlagORM:
        for field, value in changes.items():
            setattr(db_flag, field, value)
        try:
            self.db.commit()
            self.db.refresh(db_flag)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Storage failure updating flag", flag_id=db_flag.id, exc_info=True)
            raise StorageError("A database error occurred during flag update.") from e

        return db_flag

    def delete_flag(self, db_flag: FeatureFlagORM) -> None:
        try:
            self.db.delete(db_flag)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Storage failure deleting flag", flag_id=db_flag.id, exc_info=True)
            raise StorageError("A database error occurred during flag deletion.") from e
