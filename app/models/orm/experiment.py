import enum

from sqlalchemy import Column, DateTime, Enum, Float, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import relationship

from .base import Base, new_id, utcnow


# Use Python Enum for constrained choices like Experiment Status
class ExperimentStatus(str, enum.Enum):
    DRAFT = "draft"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


# --- Experiment Model ---
class ExperimentORM(Base):
    __tablename__ = "experiments"

    # --- Core Identifiers ---
    id = Column(String, primary_key=True, default=new_id)
    flag_id = Column(
        String,
        ForeignKey("feature_flags.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    # --- Traffic split, always sums to 100 ---
    variant_a_percentage = Column(Float, nullable=False, default=50.0)
    variant_b_percentage = Column(Float, nullable=False, default=50.0)

    # --- Lifecycle ---
    status = Column(
        Enum(ExperimentStatus, values_callable=lambda e: [m.value for m in e]),
        default=ExperimentStatus.DRAFT,
        nullable=False,
        index=True,
    )

    # --- Timing, both optional ---
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # One running experiment per flag, enforced by the database
    __table_args__ = (
        Index(
            "uq_one_running_experiment_per_flag",
            "flag_id",
            unique=True,
            postgresql_where=text("status = 'running'"),
            sqlite_where=text("status = 'running'"),
        ),
    )

    flag = relationship("FeatureFlagORM", back_populates="experiments")

    # One Experiment has Many Assignments
    assignments = relationship(
        "AssignmentORM",
        back_populates="experiment",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def is_active(self, now=None) -> bool:
        """Running, and inside the [start_date, end_date] window when one is set."""
        if self.status != ExperimentStatus.RUNNING:
            return False
        now = now or utcnow()
        if self.start_date is not None and now < self.start_date:
            return False
        if self.end_date is not None and now > self.end_date:
            return False
        return True
