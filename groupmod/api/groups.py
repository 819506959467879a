"""
Group management and the membership workflow.
"""

from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel

from groupmod.api.dependencies import (
    ActingUserDependency,
    DatabaseDependency,
    LoggerDependency,
    StoreDependency,
)
from groupmod.core.group import GroupData, LastAdminRule
from groupmod.core.models import LeaveResult, MembershipCheckResponse
from groupmod.service import access
from groupmod.service import groups as groups_service
from groupmod.service.store import group_key

group_app = APIRouter(tags=["Group Management"])


@group_app.get(
    "/list",
    summary="List groups",
    description=(
        "Retrieve a list of all groups, or with `mine=true` only the groups the "
        "caller is a member of."
    ),
    responses={
        200: {"description": "List of groups."},
    },
)
async def list_groups(
    user_id: ActingUserDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
    mine: bool = False,
) -> list[GroupData]:
    log = log.bind(user_id=user_id, mine=mine)
    groups = await groups_service.get_group_list(
        conn=conn, log=log, for_user=user_id if mine else None
    )
    return [g.to_core() for g in groups]


@group_app.get(
    "/{group_id}",
    summary="Get group by ID",
    responses={
        200: {"description": "Group details with members."},
        404: {"description": "Group not found."},
    },
)
async def get_group_by_id(
    group_id: UUID,
    user_id: ActingUserDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> GroupData:
    log = log.bind(user_id=user_id)
    group = await groups_service.read_by_id(group_id=group_id, conn=conn, log=log)
    return group.to_core()


class GroupCreationRequest(BaseModel):
    """
    Request model for creating a new group.
    """

    name: str
    admin_ids: list[str] = []
    member_ids: list[str] = []
    last_admin_rule: LastAdminRule = LastAdminRule.PROMOTE


@group_app.put(
    "",
    status_code=201,
    summary="Create a new group",
    description=(
        "Create a new group. The creator is always added as both a member and "
        "an administrator. Users under a global ban may not create groups."
    ),
    responses={
        201: {"description": "Group created successfully."},
        403: {"description": "The caller is banned."},
        422: {"description": "Invalid input data."},
    },
)
async def create_group(
    content: GroupCreationRequest,
    user_id: ActingUserDependency,
    store: StoreDependency,
    log: LoggerDependency,
) -> GroupData:
    async with store.transaction() as conn:
        group = await groups_service.create(
            group_name=content.name,
            created_by_user_id=user_id,
            admin_ids=content.admin_ids,
            member_ids=content.member_ids,
            last_admin_rule=content.last_admin_rule,
            conn=conn,
            log=log,
        )

    return group.to_core()


class GroupUpdateRequest(BaseModel):
    name: str | None = None
    last_admin_rule: LastAdminRule | None = None


@group_app.patch(
    "/{group_id}",
    summary="Update a group",
    description="Rename a group or change its last admin rule. Administrators only.",
    responses={
        200: {"description": "Group updated."},
        403: {"description": "The caller is not an administrator."},
        404: {"description": "Group not found."},
    },
)
async def update_group(
    group_id: UUID,
    content: GroupUpdateRequest,
    user_id: ActingUserDependency,
    store: StoreDependency,
    log: LoggerDependency,
) -> GroupData:
    async with store.transaction(group_key(group_id)) as conn:
        group = await groups_service.update(
            group_id=group_id,
            acting_user_id=user_id,
            group_name=content.name,
            last_admin_rule=content.last_admin_rule,
            conn=conn,
            log=log,
        )

    return group.to_core()


@group_app.delete(
    "/{group_id}",
    status_code=204,
    summary="Delete a group",
    responses={
        204: {"description": "Group deleted successfully."},
        403: {"description": "The caller is not an administrator."},
        404: {"description": "Group not found."},
    },
)
async def delete_group(
    group_id: UUID,
    user_id: ActingUserDependency,
    store: StoreDependency,
    log: LoggerDependency,
) -> None:
    async with store.transaction(group_key(group_id)) as conn:
        await groups_service.delete_group(
            group_id=group_id, acting_user_id=user_id, conn=conn, log=log
        )

    return None


@group_app.post(
    "/{group_id}/join",
    summary="Request to join a group",
    responses={
        200: {"description": "Join request recorded."},
        403: {"description": "The caller is banned from this group."},
        404: {"description": "Group not found."},
        409: {"description": "Already a member or already pending."},
    },
)
async def join_group(
    group_id: UUID,
    user_id: ActingUserDependency,
    store: StoreDependency,
    log: LoggerDependency,
) -> GroupData:
    async with store.transaction(group_key(group_id)) as conn:
        group = await groups_service.join(
            group_id=group_id, user_id=user_id, conn=conn, log=log
        )

    return group.to_core()


@group_app.post(
    "/{group_id}/approve/{member_id}",
    summary="Approve a join request",
    responses={
        200: {"description": "User is now a member."},
        403: {"description": "The caller is not an administrator."},
        404: {"description": "Group not found."},
        409: {"description": "The user has no pending request."},
    },
)
async def approve_request(
    group_id: UUID,
    member_id: str,
    user_id: ActingUserDependency,
    store: StoreDependency,
    log: LoggerDependency,
) -> GroupData:
    async with store.transaction(group_key(group_id)) as conn:
        group = await groups_service.approve(
            group_id=group_id,
            user_id=member_id,
            approver_id=user_id,
            conn=conn,
            log=log,
        )

    return group.to_core()


@group_app.post(
    "/{group_id}/reject/{member_id}",
    summary="Reject a join request",
    responses={
        200: {"description": "The request, if any, was removed."},
        403: {"description": "The caller is not an administrator."},
        404: {"description": "Group not found."},
    },
)
async def reject_request(
    group_id: UUID,
    member_id: str,
    user_id: ActingUserDependency,
    store: StoreDependency,
    log: LoggerDependency,
) -> GroupData:
    async with store.transaction(group_key(group_id)) as conn:
        group = await groups_service.reject(
            group_id=group_id,
            user_id=member_id,
            approver_id=user_id,
            conn=conn,
            log=log,
        )

    return group.to_core()


@group_app.post(
    "/{group_id}/ban/{member_id}",
    summary="Remove a member from a group",
    responses={
        200: {"description": "The member was removed."},
        403: {"description": "The caller is not an administrator."},
        404: {"description": "Group not found."},
        409: {"description": "Not a member, or an administrator removing themselves."},
    },
)
async def ban_member(
    group_id: UUID,
    member_id: str,
    user_id: ActingUserDependency,
    store: StoreDependency,
    log: LoggerDependency,
) -> GroupData:
    async with store.transaction(group_key(group_id)) as conn:
        group = await groups_service.ban_from_group(
            group_id=group_id,
            user_id=member_id,
            admin_id=user_id,
            conn=conn,
            log=log,
        )

    return group.to_core()


@group_app.post(
    "/{group_id}/leave",
    summary="Leave a group",
    description=(
        "Leave a group. If the caller is the last administrator, the group's "
        "last admin rule either promotes the first remaining member or deletes "
        "the group."
    ),
    responses={
        200: {"description": "Left the group; the outcome says what happened to it."},
        404: {"description": "Group not found."},
        409: {"description": "Not a member."},
    },
)
async def leave_group(
    group_id: UUID,
    user_id: ActingUserDependency,
    store: StoreDependency,
    log: LoggerDependency,
) -> LeaveResult:
    async with store.transaction(group_key(group_id)) as conn:
        return await groups_service.leave(
            group_id=group_id, user_id=user_id, conn=conn, log=log
        )


@group_app.get(
    "/{group_id}/members/{member_id}",
    summary="Check membership",
    description=(
        "Check whether a user is a member of a group and whether they are "
        "banned from it. Used by message delivery."
    ),
)
async def check_membership(
    group_id: UUID,
    member_id: str,
    user_id: ActingUserDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> MembershipCheckResponse:
    log = log.bind(user_id=user_id)
    return MembershipCheckResponse(
        group_id=group_id,
        user_id=member_id,
        is_member=await groups_service.is_member(
            group_id=group_id, user_id=member_id, conn=conn, log=log
        ),
        is_banned=await access.is_banned(
            user_id=member_id, conn=conn, group_id=group_id
        ),
    )
