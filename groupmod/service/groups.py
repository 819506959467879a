"""
Service layer for groups: creation, the membership workflow, and admin
succession.

Membership of one user in one group moves through these states:

    (none) --join--> pending --approve--> member
    pending --reject--> (none)
    member --leave / ban_from_group--> (none)

Administrators are always members. When the last administrator goes away the
group's `last_admin_rule` decides whether the first remaining member is
promoted or the group is deleted.

All functions expect to be called inside a store transaction holding the
group's lock (see `groupmod.service.store`).
"""

import re

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from groupmod.core.errors import Conflict, Forbidden, Invalid, NotFound
from groupmod.core.group import LastAdminRule
from groupmod.core.ids import is_valid_user_id
from groupmod.core.models import LeaveResult
from groupmod.core.succession import decide_succession
from groupmod.core.uuid import UUID
from groupmod.database.group import Group

from . import access

GROUP_NAME_PATTERN = re.compile(r"^[\w ]{3,50}$")


class GroupNotFound(NotFound):
    pass


class NotGroupAdmin(Forbidden):
    pass


class AlreadyMember(Conflict):
    pass


class NoPendingRequest(Conflict):
    pass


class NotMember(Conflict):
    pass


class SelfModeration(Conflict):
    pass


class InvalidRequest(Invalid):
    pass


def check_user_ids(*user_ids: str) -> None:
    """
    Raises
    ------
    InvalidRequest
        If any id is blank or contains the list delimiter.
    """
    for user_id in user_ids:
        if not isinstance(user_id, str) or not is_valid_user_id(user_id):
            raise InvalidRequest(f"Invalid user id {user_id!r}")


def clean_group_name(group_name: str) -> str:
    group_name = " ".join(group_name.split())

    if not GROUP_NAME_PATTERN.match(group_name):
        raise InvalidRequest(
            "Group names must be 3-50 characters of letters, digits, "
            "underscores and spaces"
        )

    return group_name


def parse_last_admin_rule(rule: LastAdminRule | str) -> LastAdminRule:
    try:
        return LastAdminRule(rule)
    except ValueError:
        raise InvalidRequest(
            f"Last admin rule must be one of {[x.value for x in LastAdminRule]}"
        )


async def create(
    group_name: str,
    created_by_user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    admin_ids: list[str] | None = None,
    member_ids: list[str] | None = None,
    last_admin_rule: LastAdminRule | str = LastAdminRule.PROMOTE,
) -> Group:
    """
    Create a new group.

    Parameters
    ----------
    group_name: str
        The name of the new group.
    created_by_user_id: str
        The user creating the group. They always end up as both a member and
        an administrator, whatever the lists below contain.
    admin_ids: list[str] | None
        Additional administrators. Any that are not listed as members are
        made members too.
    member_ids: list[str] | None
        The users who should initially be in the group.
    last_admin_rule: LastAdminRule | str
        What to do when the last administrator leaves.

    Raises
    ------
    InvalidRequest
        If the name, rule or any of the ids are malformed.
    access.UserBanned
        If the creator is under a global ban.
    """
    admin_ids = admin_ids or []
    member_ids = member_ids or []

    log = log.bind(
        group_name=group_name,
        user_id=created_by_user_id,
        number_of_members=len(member_ids),
        number_of_admins=len(admin_ids),
    )

    try:
        group_name = clean_group_name(group_name)
        rule = parse_last_admin_rule(last_admin_rule)
        check_user_ids(created_by_user_id, *admin_ids, *member_ids)
    except InvalidRequest as e:
        await log.ainfo("group.create.invalid", error=str(e))
        raise e

    await access.validate_access(user_id=created_by_user_id, conn=conn, log=log)

    group = Group(group_name=group_name, last_admin_rule=rule.value)

    for member_id in member_ids:
        group.add_member(member_id)

    for admin_id in [*admin_ids, created_by_user_id]:
        group.add_admin(admin_id)

    conn.add(group)
    await conn.flush()

    await log.ainfo("group.created", group_id=group.group_id)

    return group


async def get_group_list(
    conn: AsyncSession,
    log: FilteringBoundLogger,
    for_user: str | None = None,
) -> list[Group]:
    """
    Get a list of all groups, or only those `for_user` is a member of.
    """
    log = log.bind(for_user=for_user)
    result = await conn.execute(select(Group))
    groups = list(result.scalars().all())

    if for_user is not None:
        groups = [group for group in groups if group.is_member(for_user)]

    await log.adebug("group.listed", number_of_groups=len(groups))
    return groups


async def read_by_id(
    group_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group:
    """
    Read a group by its ID.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    """
    log = log.bind(group_id=group_id)
    result = await conn.execute(select(Group).where(Group.group_id == group_id))
    group = result.scalar_one_or_none()
    if not group:
        await log.ainfo("group.not_found")
        raise GroupNotFound(f"Group with id {group_id} not found")
    await log.adebug("group.found")
    return group


async def is_member(
    group_id: UUID,
    user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> bool:
    """
    Check whether `user_id` is a member of the group. An absent group has no
    members.
    """
    try:
        group = await read_by_id(group_id=group_id, conn=conn, log=log)
    except GroupNotFound:
        return False

    return group.is_member(user_id)


async def require_admin(
    group: Group, user_id: str, action: str, log: FilteringBoundLogger
) -> None:
    """
    Raises
    ------
    NotGroupAdmin
        If `user_id` is not an administrator of `group`.
    """
    if not group.is_admin(user_id):
        await log.awarning(f"group.{action}.not_admin", acting_user_id=user_id)
        raise NotGroupAdmin(
            f"Only administrators of group {group.group_id} may {action}"
        )


async def join(
    group_id: UUID,
    user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group:
    """
    Request to join a group. The user is placed in the pending requests until
    an administrator approves or rejects them.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    AlreadyMember
        If the user is already a member or already has a pending request.
    access.UserBanned
        If the user is banned globally or from this group.
    """
    log = log.bind(group_id=group_id, user_id=user_id)

    try:
        check_user_ids(user_id)
    except InvalidRequest as e:
        await log.ainfo("group.join.invalid", error=str(e))
        raise e

    group = await read_by_id(group_id=group_id, conn=conn, log=log)

    if group.is_member(user_id) or group.is_pending(user_id):
        await log.ainfo("group.join.already_member_or_pending")
        raise AlreadyMember(
            f"User {user_id} is already a member of, or has a pending request "
            f"for, group {group_id}"
        )

    await access.validate_access(user_id=user_id, conn=conn, log=log, group_id=group_id)

    group.add_pending(user_id)
    conn.add(group)
    await conn.flush()

    await log.ainfo("group.join_requested")
    return group


async def approve(
    group_id: UUID,
    user_id: str,
    approver_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group:
    """
    Approve a pending request, making the user a member.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    NotGroupAdmin
        If the approver is not an administrator.
    NoPendingRequest
        If the user has not asked to join.
    """
    log = log.bind(group_id=group_id, user_id=user_id, approver_id=approver_id)
    group = await read_by_id(group_id=group_id, conn=conn, log=log)

    await require_admin(group, approver_id, "approve", log)

    if not group.is_pending(user_id):
        await log.ainfo("group.approve.no_pending_request")
        raise NoPendingRequest(
            f"User {user_id} has no pending request for group {group_id}"
        )

    group.add_member(user_id)
    conn.add(group)
    await conn.flush()

    await log.ainfo("group.request_approved")
    return group


async def reject(
    group_id: UUID,
    user_id: str,
    approver_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group:
    """
    Reject a pending request. Rejecting a user with no pending request does
    nothing.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    NotGroupAdmin
        If the approver is not an administrator.
    """
    log = log.bind(group_id=group_id, user_id=user_id, approver_id=approver_id)
    group = await read_by_id(group_id=group_id, conn=conn, log=log)

    await require_admin(group, approver_id, "reject", log)

    if not group.is_pending(user_id):
        await log.ainfo("group.reject.no_pending_request")
        return group

    group.remove_pending(user_id)
    conn.add(group)
    await conn.flush()

    await log.ainfo("group.request_rejected")
    return group


async def remove_from_group(
    group: Group,
    user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> LeaveResult:
    """
    Take a user out of a group entirely: members, administrators and pending
    requests. If that leaves the group without administrators, succession
    runs: the first remaining member is promoted, or the group is deleted.

    This is the single path through which users leave groups, whether they
    choose to or are banned.
    """
    log = log.bind(group_id=group.group_id, user_id=user_id)
    was_admin = group.is_admin(user_id)

    group.remove_pending(user_id)
    group.remove_member(user_id)

    if was_admin and not group.admins:
        decision = decide_succession(group.members, group.rule)

        if decision.delete_group:
            await conn.delete(group)
            await conn.flush()
            await log.ainfo("group.deleted_after_last_admin", rule=group.rule.value)
            return LeaveResult(
                outcome="group_deleted", group_id=group.group_id, user_id=user_id
            )

        group.add_admin(decision.promoted_user_id)
        conn.add(group)
        await conn.flush()
        await log.ainfo("group.admin_promoted", promoted=decision.promoted_user_id)
        return LeaveResult(
            outcome="admin_promoted",
            group_id=group.group_id,
            user_id=user_id,
            promoted_user_id=decision.promoted_user_id,
            group=group.to_core(),
        )

    conn.add(group)
    await conn.flush()
    await log.ainfo("group.user_removed")
    return LeaveResult(
        outcome="left", group_id=group.group_id, user_id=user_id, group=group.to_core()
    )


async def ban_from_group(
    group_id: UUID,
    user_id: str,
    admin_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group:
    """
    Remove a member from a group at an administrator's request.

    Since the administrator cannot remove themselves, at least one
    administrator (them) always remains, and succession never runs from here.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    NotGroupAdmin
        If `admin_id` is not an administrator.
    NotMember
        If the user is not a member.
    SelfModeration
        If the administrator tries to remove themselves.
    """
    log = log.bind(group_id=group_id, user_id=user_id, admin_id=admin_id)
    group = await read_by_id(group_id=group_id, conn=conn, log=log)

    await require_admin(group, admin_id, "ban", log)

    if admin_id == user_id:
        await log.ainfo("group.ban.self")
        raise SelfModeration("An administrator may not ban themselves from a group")

    if not group.is_member(user_id):
        await log.ainfo("group.ban.not_member")
        raise NotMember(f"User {user_id} is not a member of group {group_id}")

    await remove_from_group(group=group, user_id=user_id, conn=conn, log=log)
    await log.ainfo("group.user_banned")

    return group


async def leave(
    group_id: UUID,
    user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> LeaveResult:
    """
    Leave a group. If the user is the last administrator, succession decides
    what happens to the group; the result says which way it went.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    NotMember
        If the user is not a member.
    """
    log = log.bind(group_id=group_id, user_id=user_id)
    group = await read_by_id(group_id=group_id, conn=conn, log=log)

    if not group.is_member(user_id):
        await log.ainfo("group.leave.not_member")
        raise NotMember(f"User {user_id} is not a member of group {group_id}")

    return await remove_from_group(group=group, user_id=user_id, conn=conn, log=log)


async def update(
    group_id: UUID,
    acting_user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    group_name: str | None = None,
    last_admin_rule: LastAdminRule | str | None = None,
) -> Group:
    """
    Change a group's name and/or last admin rule.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    NotGroupAdmin
        If the acting user is not an administrator.
    InvalidRequest
        If the new name or rule are malformed.
    """
    log = log.bind(
        group_id=group_id,
        acting_user_id=acting_user_id,
        group_name=group_name,
        last_admin_rule=last_admin_rule,
    )

    try:
        if group_name is not None:
            group_name = clean_group_name(group_name)
        if last_admin_rule is not None:
            last_admin_rule = parse_last_admin_rule(last_admin_rule)
    except InvalidRequest as e:
        await log.ainfo("group.update.invalid", error=str(e))
        raise e

    group = await read_by_id(group_id=group_id, conn=conn, log=log)

    await require_admin(group, acting_user_id, "update", log)

    if group_name is not None:
        group.group_name = group_name
    if last_admin_rule is not None:
        group.last_admin_rule = last_admin_rule.value

    conn.add(group)
    await conn.flush()

    await log.ainfo("group.updated")
    return group


async def delete_group(
    group_id: UUID,
    acting_user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> None:
    """
    Delete a group by its ID.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    NotGroupAdmin
        If the acting user is not an administrator.
    """
    log = log.bind(group_id=group_id, acting_user_id=acting_user_id)
    group = await read_by_id(group_id=group_id, conn=conn, log=log)

    await require_admin(group, acting_user_id, "delete", log)

    await conn.delete(group)
    await conn.flush()
    await log.ainfo("group.deleted")
