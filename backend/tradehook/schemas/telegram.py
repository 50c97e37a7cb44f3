"""
Telegram link-token schemas for tradehook.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class TelegramTokenCreate(BaseModel):
    """Body of POST /api/telegram/token."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    user_id: UUID = Field(validation_alias=AliasChoices("userId", "user_id"))


class TelegramTokenEntry(BaseModel):
    """One issued link token as listed by GET /api/telegram/token."""

    model_config = ConfigDict(from_attributes=True)

    token: str
    created_at: datetime
    expires_at: Optional[datetime] = None
    used_at: Optional[datetime] = None
    used_by_chat_id: Optional[str] = None
