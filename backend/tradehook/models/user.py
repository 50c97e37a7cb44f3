from uuid import UUID, uuid4
from datetime import datetime
from typing import Optional, List
from sqlalchemy import String, DateTime, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tradehook.db.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    """Strategy owner; plan fields gate subscriber alerts and signal email."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True, index=True)
    role: Mapped[str] = mapped_column(String(20), default="user")
    plan_name: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    plan_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Relationships
    strategies: Mapped[List["Strategy"]] = relationship(
        "Strategy",
        back_populates="owner",
        cascade="all, delete-orphan",
        foreign_keys="Strategy.user_id"
    )
