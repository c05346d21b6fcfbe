"""
FreightOps API Dependencies

Dependency injection for DB sessions, lifecycle policy, and event publishing.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.session import AsyncSessionLocal
from lifecycle.notifications import EventPublisher, RedisEventPublisher
from lifecycle.policy import LifecyclePolicy, policy_from_settings

settings = get_settings()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


def get_policy() -> LifecyclePolicy:
    """Engine thresholds and rule options resolved from settings."""
    return policy_from_settings(get_settings())


def get_event_publisher() -> EventPublisher:
    return RedisEventPublisher()
