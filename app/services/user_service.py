# services/user_service.py
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError
from app.models.orm.user import UserORM
from app.models.schemas.user import UserCreateModel, UserUpdateModel
from app.repositories.user_repo import UserRepository


class UserService:
    def __init__(self, db: Session):
        self.user_repo = UserRepository(db)

    def list_users(self) -> list[UserORM]:
        return self.user_repo.list_users()

    def get_user(self, user_ref: str) -> UserORM:
        """Accepts either the caller's user_id or the internal id."""
        user = self.user_repo.get_by_any_id(user_ref)
        if user is None:
            raise NotFoundError(f"User {user_ref} not found.")
        return user

    def create_user(self, user_data: UserCreateModel) -> UserORM:
        return self.user_repo.create_user(user_data)

    def update_user(self, user_ref: str, user_data: UserUpdateModel) -> UserORM:
        user = self.get_user(user_ref)
        changes = user_data.model_dump(exclude_unset=True)
        if changes.get("attributes") is None:
            changes.pop("attributes", None)
        return self.user_repo.update_user(user, changes)

    def delete_user(self, user_ref: str) -> None:
        user = self.get_user(user_ref)
        self.user_repo.delete_user(user)
