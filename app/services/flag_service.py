# services/flag_service.py
import structlog
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError
from app.models.orm.flag import FeatureFlagORM
from app.models.schemas.flag import FeatureFlagCreateModel, FeatureFlagUpdateModel
from app.repositories.flag_repo import FlagRepository

logger = structlog.get_logger(__name__)

_REQUIRED_FIELDS = {"name", "enabled"}


class FlagService:
    def __init__(self, db: Session):
        self.flag_repo = FlagRepository(db)

    def list_flags(self) -> list[FeatureFlagORM]:
        return self.flag_repo.list_flags()

    def get_flag(self, flag_ref: str) -> FeatureFlagORM:
        flag = self.flag_repo.get_by_id_or_key(flag_ref)
        if flag is None:
            raise NotFoundError(f"Feature flag {flag_ref} not found.")
        return flag

    def create_flag(self, flag_data: FeatureFlagCreateModel) -> FeatureFlagORM:
        flag = self.flag_repo.create_flag(flag_data)
        logger.info("Created flag", flag_key=flag.key, enabled=flag.enabled)
        return flag

    def update_flag(self, flag_ref: str, flag_data: FeatureFlagUpdateModel) -> FeatureFlagORM:
        flag = self.get_flag(flag_ref)
        changes = {
            field: value
            for field, value in flag_data.model_dump(exclude_unset=True).items()
            if value is not None or field not in _REQUIRED_FIELDS
        }
        if "enabled" in changes and changes["enabled"] != flag.enabled:
            logger.info("Flag toggled", flag_key=flag.key, enabled=changes["enabled"])
        return self.flag_repo.update_flag(flag, changes)

    def delete_flag(self, flag_ref: str) -> None:
        flag = self.get_flag(flag_ref)
        self.flag_repo.delete_flag(flag)
        logger.info("Deleted flag", flag=flag_ref)
