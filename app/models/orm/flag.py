from sqlalchemy import Boolean, Column, DateTime, String, Text
from sqlalchemy.orm import relationship

from .base import Base, new_id, utcnow


class FeatureFlagORM(Base):
    __tablename__ = "feature_flags"

    id = Column(String, primary_key=True, default=new_id)
    key = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    # Gates whether evaluation proceeds at all
    enabled = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Deleting a flag removes its experiments, and with them their assignments
    experiments = relationship(
        "ExperimentORM",
        back_populates="flag",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
