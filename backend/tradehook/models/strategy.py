from uuid import UUID, uuid4
from typing import Optional, List
from sqlalchemy import String, Boolean, JSON, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tradehook.db.base import Base, TimestampMixin


class Strategy(Base, TimestampMixin):
    """User-owned binding of a webhook key to broker defaults and notification settings."""

    __tablename__ = "strategies"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    webhook_url: Mapped[str] = mapped_column(String(500), default="")
    webhook_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    telegram_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    telegram_chat_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    marketmaya_url: Mapped[str] = mapped_column(String(500), default="")
    # Raw broker config; parsed through schemas.strategy.BrokerConfig
    marketmaya: Mapped[dict] = mapped_column(JSON, default=dict)

    # Relationships
    owner: Mapped["User"] = relationship(
        "User",
        back_populates="strategies",
        foreign_keys=[user_id]
    )
    events: Mapped[List["WebhookEvent"]] = relationship(
        "WebhookEvent",
        back_populates="strategy",
        cascade="all, delete-orphan",
        passive_deletes=True,
        foreign_keys="WebhookEvent.strategy_id"
    )
