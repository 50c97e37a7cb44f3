from uuid import UUID, uuid4
from datetime import datetime
from typing import Optional
from sqlalchemy import String, DateTime, JSON, ForeignKey, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tradehook.db.base import Base


class WebhookEvent(Base):
    """
    One received webhook signal.

    Inserted before the webhook is acknowledged; `debug` and `processed_at`
    are written once when background processing finishes.
    """

    __tablename__ = "webhook_events"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4
    )
    provider: Mapped[str] = mapped_column(String(30), nullable=False, default="chartink")
    received_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    user_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    strategy_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("strategies.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    strategy_name: Mapped[str] = mapped_column(String(100), default="")
    headers: Mapped[dict] = mapped_column(JSON, default=dict)
    payload: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    debug: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_webhook_events_user_received", "user_id", "received_at"),
    )

    strategy: Mapped["Strategy"] = relationship(
        "Strategy",
        back_populates="events",
        foreign_keys=[strategy_id]
    )
