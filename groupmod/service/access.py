"""
The access gate: read-only checks on whether a user is currently blocked by
a ban. Consulted by message sending, group creation and join requests before
they go ahead.
"""

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from groupmod.core.errors import Forbidden
from groupmod.core.models import AccessVerdict
from groupmod.core.uuid import UUID
from groupmod.database.ban import Ban


class UserBanned(Forbidden):
    pass


async def get_active_bans(user_id: str, conn: AsyncSession) -> list[Ban]:
    """
    All bans on `user_id` that have not been lifted. Expired bans are included;
    use `Ban.in_effect` to tell them apart.
    """
    result = await conn.execute(
        select(Ban)
        .where(Ban.banned_user_id == user_id)
        .where(Ban.is_active.is_(True))
    )
    return list(result.scalars().all())


async def find_blocking_ban(
    user_id: str,
    conn: AsyncSession,
    group_id: UUID | None = None,
) -> Ban | None:
    """
    Find a ban that currently blocks `user_id`: any global ban, or a ban on
    `group_id` if one is given. Global bans are preferred when both exist.
    """
    now = datetime.now(tz=timezone.utc)
    blocking = [
        ban for ban in await get_active_bans(user_id, conn) if ban.blocks(group_id, now)
    ]

    if not blocking:
        return None

    return sorted(blocking, key=lambda ban: ban.group_id is not None)[0]


async def is_banned(
    user_id: str, conn: AsyncSession, group_id: UUID | None = None
) -> bool:
    return await find_blocking_ban(user_id=user_id, conn=conn, group_id=group_id) is not None


async def check_access(
    user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    group_id: UUID | None = None,
) -> AccessVerdict:
    """
    Work out whether `user_id` may act, globally or within `group_id`.
    """
    log = log.bind(user_id=user_id, group_id=group_id)
    ban = await find_blocking_ban(user_id=user_id, conn=conn, group_id=group_id)

    if ban is None:
        await log.adebug("access.allowed")
        return AccessVerdict(user_id=user_id, group_id=group_id, allowed=True)

    await log.adebug("access.blocked", ban_id=ban.ban_id)
    return AccessVerdict(
        user_id=user_id, group_id=group_id, allowed=False, ban_id=ban.ban_id
    )


async def validate_access(
    user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    group_id: UUID | None = None,
) -> None:
    """
    Ensure `user_id` is not blocked.

    Raises
    ------
    UserBanned
        If an active ban blocks the user.
    """
    verdict = await check_access(user_id=user_id, conn=conn, log=log, group_id=group_id)

    if not verdict.allowed:
        await log.ainfo(
            "access.denied", user_id=user_id, group_id=group_id, ban_id=verdict.ban_id
        )
        raise UserBanned(f"User {user_id} is banned and cannot perform this action")
