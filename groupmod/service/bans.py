"""
Service layer for moderation: manual bans, reports, automatic bans from
accumulated reports, and unbanning.

A ban is either global or scoped to one group. At most one active ban may
exist for each (user, scope, group); an expired ban still counts as active
until something replaces it. Bans are never deleted, only deactivated.

Mutating functions expect to be called inside a store transaction holding
`moderation_key(target_user_id, group_id)`, and additionally
`group_key(group_id)` for group-scoped bans since those also remove the
target from the group.
"""

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from groupmod.core.ban import SYSTEM_ACTOR, BanReason, BanScope
from groupmod.core.errors import Conflict, NotFound
from groupmod.core.ids import join_ids
from groupmod.core.models import ReportResult
from groupmod.core.uuid import UUID
from groupmod.database.ban import Ban, as_utc

from . import access
from . import groups as groups_service
from .directory import UserDirectory
from .groups import InvalidRequest, SelfModeration, check_user_ids
from .reports import ReportAggregate
from .store import after_commit


class UserNotFound(NotFound):
    pass


class BanNotFound(NotFound):
    pass


class DuplicateBan(Conflict):
    pass


class DuplicateReport(Conflict):
    pass


def parse_reason(reason: BanReason | str) -> BanReason:
    try:
        return BanReason(reason)
    except ValueError:
        raise InvalidRequest(
            f"Ban reason must be one of {[x.value for x in BanReason]}"
        )


def parse_scope(scope: BanScope | str, group_id: UUID | None) -> BanScope:
    try:
        scope = BanScope(scope)
    except ValueError:
        raise InvalidRequest(f"Ban scope must be one of {[x.value for x in BanScope]}")

    if scope == BanScope.GROUP and group_id is None:
        raise InvalidRequest("Group bans require a group id")

    if scope == BanScope.GLOBAL and group_id is not None:
        raise InvalidRequest("Global bans cannot name a group")

    return scope


async def require_user(
    user_id: str, users: UserDirectory, log: FilteringBoundLogger
) -> None:
    """
    Raises
    ------
    UserNotFound
        If the directory does not know `user_id`.
    """
    if not await users.user_exists(user_id):
        await log.ainfo("ban.user_not_found", missing_user_id=user_id)
        raise UserNotFound(f"User {user_id} not found")


async def issue(
    target_user_id: str,
    banned_by_user_id: str,
    reason: BanReason,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    group_id: UUID | None = None,
    expires_at: datetime | None = None,
    reporter_ids: list[str] | None = None,
) -> Ban:
    """
    Persist a new active ban, without any permission checks. Used for both
    manual and automatic bans.

    An expired ban on the same (user, scope, group) is deactivated first. A
    group-scoped ban also removes the user from the group.

    Raises
    ------
    DuplicateBan
        If a ban on the same (user, scope, group) is already in effect.
    groups_service.GroupNotFound
        If the ban is scoped to a group that does not exist.
    """
    log = log.bind(
        target_user_id=target_user_id,
        banned_by_user_id=banned_by_user_id,
        reason=reason.value,
        group_id=group_id,
    )
    now = datetime.now(tz=timezone.utc)

    same_scope = [
        ban
        for ban in await access.get_active_bans(user_id=target_user_id, conn=conn)
        if ban.group_id == group_id
    ]

    for existing in same_scope:
        if existing.in_effect(now):
            await log.ainfo("ban.duplicate", ban_id=existing.ban_id)
            raise DuplicateBan(f"User {target_user_id} is already banned")

    group = None
    if group_id is not None:
        group = await groups_service.read_by_id(group_id=group_id, conn=conn, log=log)

    for expired in same_scope:
        expired.is_active = False
        conn.add(expired)
        await log.ainfo("ban.expired_deactivated", ban_id=expired.ban_id)

    ban = Ban(
        banned_user_id=target_user_id,
        banned_by_user_id=banned_by_user_id,
        reason=reason.value,
        banned_at=now,
        expires_at=expires_at,
        is_active=True,
        group_id=group_id,
        reporter_ids=join_ids(reporter_ids or []),
    )
    conn.add(ban)
    await conn.flush()

    log = log.bind(ban_id=ban.ban_id)

    if group is not None and (
        group.is_member(target_user_id) or group.is_pending(target_user_id)
    ):
        await groups_service.remove_from_group(
            group=group, user_id=target_user_id, conn=conn, log=log
        )

    await log.ainfo("ban.created")

    return ban


async def ban(
    target_user_id: str,
    acting_user_id: str,
    users: UserDirectory,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    reason: BanReason | str = BanReason.ADMIN_DECISION,
    scope: BanScope | str = BanScope.GLOBAL,
    group_id: UUID | None = None,
    expires_at: datetime | None = None,
) -> Ban:
    """
    Ban a user, either everywhere or from one group.

    Parameters
    ----------
    target_user_id: str
        The user to ban.
    acting_user_id: str
        The user issuing the ban. For group bans they must administer the
        group.
    users: UserDirectory
        Used to check that both users exist.
    reason: BanReason | str
        Why the user is being banned.
    scope: BanScope | str
        `global`, or `group` together with `group_id`.
    expires_at: datetime | None
        When the ban lapses. Must be in the future; `None` bans indefinitely.

    Raises
    ------
    InvalidRequest
        If the ids, reason, scope or expiry are malformed.
    UserNotFound
        If either user does not exist.
    SelfModeration
        If a user tries to ban themselves.
    groups_service.GroupNotFound
        If a group ban names a group that does not exist.
    groups_service.NotGroupAdmin
        If a group ban is issued by someone who does not administer the group.
    DuplicateBan
        If the user is already banned in this scope.
    """
    log = log.bind(
        target_user_id=target_user_id,
        acting_user_id=acting_user_id,
        reason=reason,
        scope=scope,
        group_id=group_id,
    )

    try:
        check_user_ids(acting_user_id, target_user_id)
        reason = parse_reason(reason)
        scope = parse_scope(scope, group_id)

        if expires_at is not None:
            expires_at = as_utc(expires_at)
            if expires_at <= datetime.now(tz=timezone.utc):
                raise InvalidRequest("Ban expiry must be in the future")
    except InvalidRequest as e:
        await log.ainfo("ban.invalid", error=str(e))
        raise e

    await require_user(acting_user_id, users, log)
    await require_user(target_user_id, users, log)

    if target_user_id == acting_user_id:
        await log.ainfo("ban.self")
        raise SelfModeration("Users may not ban themselves")

    if scope == BanScope.GROUP:
        group = await groups_service.read_by_id(group_id=group_id, conn=conn, log=log)
        await groups_service.require_admin(group, acting_user_id, "ban", log)

    return await issue(
        target_user_id=target_user_id,
        banned_by_user_id=acting_user_id,
        reason=reason,
        conn=conn,
        log=log,
        group_id=group_id,
        expires_at=expires_at,
    )


async def report(
    target_user_id: str,
    reporter_id: str,
    aggregate: ReportAggregate,
    users: UserDirectory,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    reason: BanReason | str = BanReason.SPAM,
    group_id: UUID | None = None,
) -> ReportResult:
    """
    Report a user, optionally within a group. Once `aggregate.threshold`
    distinct users have reported the same target, the target is banned
    automatically by the system actor and the reports are cleared.

    Changes to `aggregate` are deferred until the surrounding store
    transaction commits, so a rolled back report leaves it untouched.

    Raises
    ------
    InvalidRequest
        If the ids or the reason are malformed.
    UserNotFound
        If the target does not exist.
    SelfModeration
        If a user reports themselves.
    groups_service.GroupNotFound
        If the report names a group that does not exist.
    DuplicateReport
        If this reporter has already reported this target.
    DuplicateBan
        If the report would trigger an automatic ban but the target is already
        banned in this scope. The report is not recorded.
    """
    log = log.bind(
        target_user_id=target_user_id,
        reporter_id=reporter_id,
        reason=reason,
        group_id=group_id,
    )

    try:
        check_user_ids(reporter_id, target_user_id)
        reason = parse_reason(reason)
    except InvalidRequest as e:
        await log.ainfo("report.invalid", error=str(e))
        raise e

    await require_user(target_user_id, users, log)

    if target_user_id == reporter_id:
        await log.ainfo("report.self")
        raise SelfModeration("Users may not report themselves")

    if group_id is not None:
        await groups_service.read_by_id(group_id=group_id, conn=conn, log=log)

    key = aggregate.key_for(target_user_id, group_id)

    if aggregate.has_reported(key, reporter_id):
        await log.ainfo("report.duplicate")
        raise DuplicateReport(f"You have already reported user {target_user_id}")

    count = aggregate.count(key) + 1
    log = log.bind(report_count=count, threshold=aggregate.threshold)

    if count < aggregate.threshold:
        after_commit(conn, lambda: aggregate.record(key, reporter_id))
        await log.ainfo("report.recorded")
        return ReportResult(
            message=f"User reported. Reports: {count}/{aggregate.threshold}",
            report_count=count,
            threshold=aggregate.threshold,
        )

    automatic_ban = await issue(
        target_user_id=target_user_id,
        banned_by_user_id=SYSTEM_ACTOR,
        reason=BanReason.MULTIPLE_REPORTS,
        conn=conn,
        log=log,
        group_id=group_id,
        reporter_ids=[*aggregate.reporters(key), reporter_id],
    )
    after_commit(conn, lambda: aggregate.clear(key))

    await log.ainfo("report.automatic_ban", ban_id=automatic_ban.ban_id)

    return ReportResult(
        message="User reported and banned automatically after multiple reports",
        report_count=count,
        threshold=aggregate.threshold,
        auto_banned=True,
        ban=automatic_ban.to_core(),
    )


async def read_by_id(
    ban_id: UUID, conn: AsyncSession, log: FilteringBoundLogger
) -> Ban:
    """
    Raises
    ------
    BanNotFound
        If no ban has this id.
    """
    log = log.bind(ban_id=ban_id)
    result = await conn.execute(select(Ban).where(Ban.ban_id == ban_id))
    found = result.scalar_one_or_none()

    if found is None:
        await log.ainfo("ban.not_found")
        raise BanNotFound(f"Ban {ban_id} not found")

    await log.adebug("ban.found")
    return found


async def unban(
    ban_id: UUID,
    acting_user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Ban:
    """
    Lift a ban. The row is kept, marked inactive.

    Raises
    ------
    BanNotFound
        If the ban does not exist or has already been lifted.
    groups_service.NotGroupAdmin
        If the ban is scoped to a group that still exists and the acting user
        does not administer it.
    """
    log = log.bind(ban_id=ban_id, acting_user_id=acting_user_id)
    found = await read_by_id(ban_id=ban_id, conn=conn, log=log)

    if not found.is_active:
        await log.ainfo("ban.unban.already_inactive")
        raise BanNotFound(f"Ban {ban_id} not found or already lifted")

    if found.group_id is not None:
        try:
            group = await groups_service.read_by_id(
                group_id=found.group_id, conn=conn, log=log
            )
        except groups_service.GroupNotFound:
            group = None

        if group is not None:
            await groups_service.require_admin(group, acting_user_id, "unban", log)

    found.is_active = False
    conn.add(found)
    await conn.flush()

    await log.ainfo("ban.lifted", banned_user_id=found.banned_user_id)
    return found


async def get_ban_list(
    conn: AsyncSession, log: FilteringBoundLogger, active_only: bool = False
) -> list[Ban]:
    """
    Get all bans, oldest first.
    """
    query = select(Ban).order_by(Ban.banned_at)

    if active_only:
        query = query.where(Ban.is_active.is_(True))

    result = await conn.execute(query)
    found = list(result.scalars().all())

    await log.adebug("ban.listed", number_of_bans=len(found), active_only=active_only)
    return found


async def get_user_bans(
    user_id: str, conn: AsyncSession, log: FilteringBoundLogger
) -> list[Ban]:
    """
    Get the bans on `user_id` that have not been lifted.
    """
    found = await access.get_active_bans(user_id=user_id, conn=conn)
    await log.adebug("ban.user_listed", user_id=user_id, number_of_bans=len(found))
    return found
