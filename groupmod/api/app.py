"""
FastAPI app
"""

from importlib.metadata import version

from fastapi import FastAPI

from groupmod.database.meta import ALL_TABLES
from groupmod.service.directory import directory_from_settings
from groupmod.service.reports import ReportAggregate
from groupmod.service.store import EntityStore

from .bans import ban_app
from .dependencies import SETTINGS, logger
from .errors import add_exception_handlers
from .groups import group_app


async def lifespan(app: FastAPI):
    settings = SETTINGS()
    manager = settings.async_manager()

    if settings.create_tables:
        await manager.create_all()

    app.settings = settings
    app.store = EntityStore(manager)
    app.users = directory_from_settings(settings)
    # Reports start from nothing on every boot.
    app.reports = ReportAggregate(threshold=settings.report_threshold)

    await logger().ainfo(
        "app.started",
        database_type=settings.database_type,
        tables=[table.__tablename__ for table in ALL_TABLES],
        report_threshold=settings.report_threshold,
    )

    yield

    await manager.engine.dispose()


app = FastAPI(
    lifespan=lifespan,
    title="groupmod API",
    summary="Group membership and moderation for the messaging platform.",
    version=version("groupmod"),
)

app = add_exception_handlers(app)

app.include_router(group_app, prefix="/groups")
app.include_router(ban_app, prefix="/bans")
