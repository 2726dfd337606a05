"""
Dependencies used by the API.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger
from structlog.typing import FilteringBoundLogger

from gearshare.config.settings import Settings
from gearshare.core import events


@lru_cache
def SETTINGS():
    return Settings()


DATABASE_MANAGER = SETTINGS().async_manager()

EVENT_BUS = events.EventBus()


async def get_async_session():
    """
    One transaction per request. Change events queued by the service layer are
    only published once the transaction has committed.
    """
    async with DATABASE_MANAGER.session() as session:
        try:
            async with session.begin():
                yield session
        except Exception:
            events.discard_queued(session)
            raise

        await events.publish_queued(session, get_event_bus())


def logger():
    return get_logger()


def get_event_bus() -> events.EventBus:
    return EVENT_BUS


SettingsDependency = Annotated[Settings, Depends(SETTINGS)]
DatabaseDependency = Annotated[AsyncSession, Depends(get_async_session)]
LoggerDependency = Annotated[FilteringBoundLogger, Depends(logger)]
EventBusDependency = Annotated[events.EventBus, Depends(get_event_bus)]
