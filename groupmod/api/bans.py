"""
Moderation: bans, reports and access checks.
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel

from groupmod.api.dependencies import (
    ActingUserDependency,
    DatabaseDependency,
    LoggerDependency,
    ReportsDependency,
    StoreDependency,
    UsersDependency,
)
from groupmod.core.ban import BanData, BanReason, BanScope
from groupmod.core.models import AccessVerdict, ReportResult
from groupmod.service import access
from groupmod.service import bans as bans_service
from groupmod.service.store import group_key, moderation_key

ban_app = APIRouter(tags=["Moderation"])


def lock_keys(user_id: str, group_id: UUID | None) -> list:
    keys = [moderation_key(user_id, group_id)]

    if group_id is not None:
        keys.append(group_key(group_id))

    return keys


class BanRequest(BaseModel):
    banned_user_id: str
    reason: BanReason = BanReason.ADMIN_DECISION
    scope: BanScope = BanScope.GLOBAL
    group_id: UUID | None = None
    expires_at: datetime | None = None


@ban_app.post(
    "",
    status_code=201,
    summary="Ban a user",
    description=(
        "Ban a user everywhere, or from one group. Group bans may only be issued "
        "by that group's administrators and also remove the user from the group."
    ),
    responses={
        201: {"description": "Ban issued."},
        403: {"description": "The caller does not administer the group."},
        404: {"description": "User or group not found."},
        409: {"description": "Self-ban, or the user is already banned in this scope."},
        422: {"description": "Invalid reason, scope or expiry."},
    },
)
async def ban_user(
    content: BanRequest,
    user_id: ActingUserDependency,
    store: StoreDependency,
    users: UsersDependency,
    log: LoggerDependency,
) -> BanData:
    async with store.transaction(
        *lock_keys(content.banned_user_id, content.group_id)
    ) as conn:
        ban = await bans_service.ban(
            target_user_id=content.banned_user_id,
            acting_user_id=user_id,
            reason=content.reason,
            scope=content.scope,
            group_id=content.group_id,
            expires_at=content.expires_at,
            users=users,
            conn=conn,
            log=log,
        )

    return ban.to_core()


class ReportRequest(BaseModel):
    reported_user_id: str
    reason: BanReason
    group_id: UUID | None = None


@ban_app.post(
    "/report",
    summary="Report a user",
    description=(
        "Report a user, optionally within a group. Once enough distinct users "
        "have reported the same target, it is banned automatically."
    ),
    responses={
        200: {"description": "Report recorded; says whether a ban followed."},
        404: {"description": "User or group not found."},
        409: {"description": "Self-report, repeated report, or already banned."},
    },
)
async def report_user(
    content: ReportRequest,
    user_id: ActingUserDependency,
    store: StoreDependency,
    users: UsersDependency,
    reports: ReportsDependency,
    log: LoggerDependency,
) -> ReportResult:
    async with store.transaction(
        *lock_keys(content.reported_user_id, content.group_id)
    ) as conn:
        return await bans_service.report(
            target_user_id=content.reported_user_id,
            reporter_id=user_id,
            reason=content.reason,
            group_id=content.group_id,
            aggregate=reports,
            users=users,
            conn=conn,
            log=log,
        )


@ban_app.get(
    "",
    summary="List bans",
)
async def list_bans(
    user_id: ActingUserDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
    active_only: bool = False,
) -> list[BanData]:
    log = log.bind(user_id=user_id)
    found = await bans_service.get_ban_list(conn=conn, log=log, active_only=active_only)
    return [b.to_core() for b in found]


@ban_app.get(
    "/user/{banned_user_id}",
    summary="List a user's bans",
    description="Bans on the user that have not been lifted.",
)
async def list_user_bans(
    banned_user_id: str,
    user_id: ActingUserDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> list[BanData]:
    log = log.bind(user_id=user_id)
    found = await bans_service.get_user_bans(user_id=banned_user_id, conn=conn, log=log)
    return [b.to_core() for b in found]


@ban_app.delete(
    "/{ban_id}",
    summary="Lift a ban",
    responses={
        200: {"description": "Ban lifted."},
        403: {"description": "The caller does not administer the banned group."},
        404: {"description": "Ban not found or already lifted."},
    },
)
async def unban_user(
    ban_id: UUID,
    user_id: ActingUserDependency,
    store: StoreDependency,
    log: LoggerDependency,
) -> BanData:
    async with store.read() as conn:
        found = await bans_service.read_by_id(ban_id=ban_id, conn=conn, log=log)

    async with store.transaction(
        moderation_key(found.banned_user_id, found.group_id)
    ) as conn:
        lifted = await bans_service.unban(
            ban_id=ban_id, acting_user_id=user_id, conn=conn, log=log
        )

    return lifted.to_core()


@ban_app.get(
    "/check/{checked_user_id}",
    summary="Check whether a user is blocked",
    description=(
        "Whether a user is currently blocked by a ban, globally or within "
        "`group_id`. Consulted before sending messages."
    ),
)
async def check_user(
    checked_user_id: str,
    user_id: ActingUserDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
    group_id: UUID | None = None,
) -> AccessVerdict:
    log = log.bind(user_id=user_id)
    return await access.check_access(
        user_id=checked_user_id, conn=conn, log=log, group_id=group_id
    )
