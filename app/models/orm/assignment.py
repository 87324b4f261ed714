import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import Base, new_id, utcnow


class Variant(str, enum.Enum):
    A = "A"
    B = "B"


class AssignmentORM(Base):
    __tablename__ = "experiment_assignments"

    id = Column(String, primary_key=True, default=new_id)
    experiment_id = Column(
        String,
        ForeignKey("experiments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Internal users.id, not the caller supplied external id
    user_id = Column(
        String,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    variant = Column(Enum(Variant, values_callable=lambda e: [m.value for m in e]), nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    # At most one assignment per pair, enforced by the database
    __table_args__ = (
        UniqueConstraint("experiment_id", "user_id", name="uq_assignment_experiment_user"),
    )

    experiment = relationship("ExperimentORM", back_populates="assignments")

    user = relationship("UserORM", back_populates="assignments")
