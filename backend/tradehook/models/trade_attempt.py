from uuid import UUID, uuid4
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Boolean, Text, DateTime, JSON, ForeignKey, Index, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from tradehook.db.base import Base


class TradeAttempt(Base):
    """Append-only audit record of one broker dispatch attempt (or its synthesized failure)."""

    __tablename__ = "trade_attempts"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4
    )
    user_id: Mapped[Optional[UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True, index=True)
    strategy_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("strategies.id", ondelete="SET NULL"),
        nullable=True
    )
    strategy_name: Mapped[str] = mapped_column(String(100), default="")
    received_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=func.now(),
        nullable=False
    )
    execute: Mapped[bool] = mapped_column(Boolean, default=False)
    symbol: Mapped[str] = mapped_column(String(64), default="")
    symbol_code: Mapped[str] = mapped_column(String(64), default="")
    params: Mapped[dict] = mapped_column(JSON, default=dict)
    response: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    ok: Mapped[bool] = mapped_column(Boolean, default=False)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Quota lookups filter on strategy + day range + execute flag
    __table_args__ = (
        Index("ix_trade_attempts_strategy_created", "strategy_id", "created_at", "execute"),
    )
