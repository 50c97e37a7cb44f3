"""
Strategy service for tradehook.

PURPOSE: Strategy lookups for the webhook path plus the lifecycle operations
that must uphold the strategy invariants: an enabled strategy always has a
resolvable broker token, and deleting a strategy removes its events.

CALLED BY: api/routes_webhook.py, strategy management collaborators
"""

import secrets
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tradehook.core.errors import StrategyConfigError
from tradehook.models.strategy import Strategy
from tradehook.schemas.strategy import BrokerConfig, StrategyCreate, StrategyUpdate
from tradehook.trading.broker import resolve_token
from tradehook.utils.logger import get_logger


logger = get_logger("services.strategy")

TOKEN_REQUIRED = "Market Maya token is required to enable a strategy"


def _ensure_token_for_enabled(enabled: bool, config: BrokerConfig) -> None:
    if enabled and not resolve_token(config.token):
        raise StrategyConfigError(TOKEN_REQUIRED)


def generate_webhook_key() -> str:
    """Return a new opaque, URL-safe webhook key."""
    return secrets.token_urlsafe(24)


class StrategyService:
    """
    Service for managing signal strategies.

    PURPOSE: Resolve webhook keys to strategies and apply validated
    create/update/delete operations.

    CALLED BY: Webhook route, management collaborators
    """

    @staticmethod
    async def get_by_key(db: AsyncSession, webhook_key: str) -> Optional[Strategy]:
        """
        Retrieve the strategy bound to a webhook key.

        CALLED BY: POST /api/webhook/chartink

        Args:
            db: Async database session
            webhook_key: Opaque key from X-Strategy-Key or ?key=

        Returns:
            Strategy if found, None otherwise
        """
        stmt = select(Strategy).where(Strategy.webhook_key == webhook_key)
        strategy = (await db.execute(stmt)).scalar_one_or_none()
        if strategy is None:
            logger.info("strategy_key_not_found")
        return strategy

    @staticmethod
    async def get_strategy(db: AsyncSession, strategy_id: UUID) -> Optional[Strategy]:
        return await db.get(Strategy, strategy_id)

    @staticmethod
    async def create_strategy(db: AsyncSession, user_id: UUID, data: StrategyCreate) -> Strategy:
        """
        Create a strategy with a fresh webhook key.

        Args:
            db: Async database session
            user_id: Owner
            data: Validated strategy fields

        Returns:
            Strategy: The persisted strategy

        Raises:
            StrategyConfigError: If enabled without a resolvable broker token
        """
        config = data.marketmaya
        if data.marketmaya_token and not config.token:
            config = config.model_copy(update={"token": data.marketmaya_token.strip()})
        _ensure_token_for_enabled(data.enabled, config)

        strategy = Strategy(
            user_id=user_id,
            name=data.name,
            webhook_url=data.webhook_url,
            webhook_key=generate_webhook_key(),
            enabled=data.enabled,
            telegram_enabled=data.telegram_enabled,
            telegram_chat_id=data.telegram_chat_id,
            marketmaya_url=data.marketmaya_url.strip(),
            marketmaya=config.to_storage(),
        )
        db.add(strategy)
        await db.commit()
        await db.refresh(strategy)
        logger.info("strategy_created", strategy_id=str(strategy.id), enabled=strategy.enabled)
        return strategy

    @staticmethod
    async def update_strategy(db: AsyncSession, strategy_id: UUID, update: StrategyUpdate) -> Strategy:
        """
        Apply a partial update.

        The token invariant is checked against the merged state, so disabling
        always succeeds and enabling fails without a token.

        Raises:
            LookupError: If the strategy does not exist
            StrategyConfigError: If the result would be enabled without a token
        """
        strategy = await db.get(Strategy, strategy_id)
        if strategy is None:
            raise LookupError(f"Strategy {strategy_id} not found")

        config = update.marketmaya or BrokerConfig.from_strategy_json(strategy.marketmaya)
        enabled = strategy.enabled if update.enabled is None else update.enabled
        _ensure_token_for_enabled(enabled, config)

        if update.name is not None:
            strategy.name = update.name
        if update.telegram_enabled is not None:
            strategy.telegram_enabled = update.telegram_enabled
        if update.telegram_chat_id is not None:
            strategy.telegram_chat_id = update.telegram_chat_id
        if update.marketmaya_url is not None:
            strategy.marketmaya_url = update.marketmaya_url.strip()
        if update.marketmaya is not None:
            strategy.marketmaya = config.to_storage()
        strategy.enabled = enabled

        await db.commit()
        await db.refresh(strategy)
        logger.info("strategy_updated", strategy_id=str(strategy_id), enabled=enabled)
        return strategy

    @staticmethod
    async def delete_strategy(db: AsyncSession, strategy_id: UUID) -> bool:
        """
        Delete a strategy and, through the FK cascade, its webhook events.

        Returns:
            bool: True if a strategy was deleted
        """
        strategy = await db.get(Strategy, strategy_id)
        if strategy is None:
            return False
        await db.delete(strategy)
        await db.commit()
        logger.info("strategy_deleted", strategy_id=str(strategy_id))
        return True
