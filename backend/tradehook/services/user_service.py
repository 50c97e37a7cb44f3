"""
PURPOSE: Narrow user lookups needed by the signal pipeline.

User management lives elsewhere; the pipeline only needs to load an owner
and decide whether their plan entitles them to subscriber alerts and email.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tradehook.models.user import User
from tradehook.utils.time_utils import get_utc_now, to_naive_utc


def is_plan_active(user: Optional[User], now: Optional[datetime] = None) -> bool:
    """
    PURPOSE: Check whether a user's plan is currently active.

    Args:
        user: User or None.
        now: Reference time; defaults to the current UTC time.

    Returns:
        bool: True for admins, otherwise True only when plan_expires_at is in the future.
    """
    if user is None:
        return False
    if user.role == "admin":
        return True
    if user.plan_expires_at is None:
        return False
    reference = to_naive_utc(now or get_utc_now())
    return to_naive_utc(user.plan_expires_at) > reference


class UserService:
    """User lookups for the pipeline."""

    @staticmethod
    async def get_user(db: AsyncSession, user_id: UUID) -> Optional[User]:
        """Return the user with user_id, or None."""
        return await db.get(User, user_id)
