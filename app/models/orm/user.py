from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import relationship

from .base import Base, JSON_TYPE, new_id, utcnow


class UserORM(Base):
    __tablename__ = "users"

    # Internal identity; assignments reference this column
    id = Column(String, primary_key=True, default=new_id)
    # External identity supplied by the caller of evaluate
    user_id = Column(String, nullable=False, unique=True, index=True)

    email = Column(String, nullable=True)
    name = Column(String, nullable=True)

    # Free-form targeting attributes, not interpreted yet
    attributes = Column(JSON_TYPE, nullable=False, default=dict)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    assignments = relationship(
        "AssignmentORM",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
