"""
Dependencies used by the API.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger
from structlog.typing import FilteringBoundLogger

from groupmod.config.settings import Settings
from groupmod.service.directory import UserDirectory
from groupmod.service.reports import ReportAggregate
from groupmod.service.store import EntityStore


@lru_cache
def SETTINGS():
    return Settings()


def get_store(request: Request) -> EntityStore:
    return request.app.store


def get_users(request: Request) -> UserDirectory:
    return request.app.users


def get_reports(request: Request) -> ReportAggregate:
    return request.app.reports


StoreDependency = Annotated[EntityStore, Depends(get_store)]


async def get_async_session(store: StoreDependency):
    async with store.read() as session:
        yield session


def logger():
    return get_logger()


def acting_user(request: Request) -> str:
    """
    The id of the user making the request. Authentication happens upstream;
    the gateway in front of us sets this header once it has verified the
    caller, and we trust it.
    """
    header = request.app.settings.identity_header
    user_id = request.headers.get(header)

    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {header} header",
        )

    return user_id


DatabaseDependency = Annotated[AsyncSession, Depends(get_async_session)]
LoggerDependency = Annotated[FilteringBoundLogger, Depends(logger)]
UsersDependency = Annotated[UserDirectory, Depends(get_users)]
ReportsDependency = Annotated[ReportAggregate, Depends(get_reports)]
ActingUserDependency = Annotated[str, Depends(acting_user)]
