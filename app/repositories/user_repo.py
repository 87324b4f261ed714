from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import StorageError, ValidationError
from app.models.orm.base import new_id
from app.models.orm.user import UserORM
from app.models.schemas.user import UserCreateModel

logger = structlog.get_logger(__name__)


class UserRepository:
    def __init__(self, db: Session):
        """Initializes the repository with a database session."""
        self.db = db

    def list_users(self) -> list[UserORM]:
        stmt = select(UserORM).order_by(UserORM.created_at.desc())
        return list(self.db.scalars(stmt).all())

    def get_by_id(self, user_pk: str) -> Optional[UserORM]:
        return self.db.get(UserORM, user_pk)

    def get_by_external_id(self, external_user_id: str) -> Optional[UserORM]:
        stmt = select(UserORM).where(UserORM.user_id == external_user_id)
        return self.db.scalars(stmt).one_or_none()

    def get_by_any_id(self, user_ref: str) -> Optional[UserORM]:
        """External id first, internal id second."""
        return self.get_by_external_id(user_ref) or self.get_by_id(user_ref)

    def create_user(self, user_data: UserCreateModel) -> UserORM:
        user_dict = user_data.model_dump()
        user_dict["id"] = new_id()
        if not user_dict.get("user_id"):
            user_dict["user_id"] = user_dict["id"]

        db_user = UserORM(**user_dict)
        try:
            self.db.add(db_user)
            self.db.commit()
            self.db.refresh(db_user)
        except IntegrityError as e:
            self.db.rollback()
            raise ValidationError(f"A user with user_id '{user_dict['user_id']}' already exists.") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Storage failure creating user", user_id=user_dict["user_id"], exc_info=True)
            raise StorageError("A database error occurred during user creation.") from e

        return db_user

    def ensure_user(self, external_user_id: str) -> UserORM:
        """
        Returns the user with this external id, creating a bare one if needed.

        Only the external ``user_id`` column is consulted; an internal id passed
        here is treated as a new external id.

        Concurrent first sightings race on the unique ``user_id`` column; the
        loser re-reads the winner's row.
        """
        existing = self.get_by_external_id(external_user_id)
        if existing is not None:
            return existing

        db_user = UserORM(id=new_id(), user_id=external_user_id, attributes={})
        try:
            self.db.add(db_user)
            self.db.commit()
            self.db.refresh(db_user)
            logger.info("Created user on first evaluation", user_id=external_user_id)
            return db_user
        except IntegrityError as e:
            self.db.rollback()
            winner = self.get_by_external_id(external_user_id)
            if winner is None:
                raise StorageError(f"User {external_user_id} conflicted but could not be read back.") from e
            return winner
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Storage failure creating user", user_id=external_user_id, exc_info=True)
            raise StorageError("A database error occurred while creating the user.") from e

    def update_user(self, db_user: UserORM, changes: dict) -> UserORM:
        for field, value in changes.items():
            setattr(db_user, field, value)
        try:
            self.db.commit()
            self.db.refresh(db_user)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Storage failure updating user", user_pk=db_user.id, exc_info=True)
            raise StorageError("A database error occurred during user update.") from e

        return db_user

    def delete_user(self, db_user: UserORM) -> None:
        try:
            self.db.delete(db_user)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Storage failure deleting user", user_pk=db_user.id, exc_info=True)
            raise StorageError("A database error occurred during user deletion.") from e
