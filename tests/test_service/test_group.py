"""
Tests the group service layer: creation, reads, updates and deletion.
"""

import pytest

from groupmod.core.group import LastAdminRule
from groupmod.core.uuid import uuid7
from groupmod.service import groups as groups_service
from groupmod.service.store import group_key


@pytest.mark.asyncio(loop_scope="session")
async def test_create_group(store, logger, new_user):
    creator = new_user("creator")

    async with store.transaction() as conn:
        group = await groups_service.create(
            group_name="test_new_group",
            created_by_user_id=creator,
            conn=conn,
            log=logger,
        )

        GROUP_ID = group.group_id

    # Read by ID
    async with store.read() as conn:
        group = await groups_service.read_by_id(
            group_id=GROUP_ID, conn=conn, log=logger
        )

        assert group.group_name == "test_new_group"
        assert group.members == [creator]
        assert group.admins == [creator]
        assert group.pending_requests == []
        assert group.rule == LastAdminRule.PROMOTE

    # Shows up in the list for the creator, but not for someone else
    async with store.read() as conn:
        mine = await groups_service.get_group_list(
            conn=conn, log=logger, for_user=creator
        )
        theirs = await groups_service.get_group_list(
            conn=conn, log=logger, for_user=new_user("stranger")
        )
        everything = await groups_service.get_group_list(conn=conn, log=logger)

        assert [g.group_id for g in mine] == [GROUP_ID]
        assert theirs == []
        assert GROUP_ID in {g.group_id for g in everything}

    # Delete the group
    async with store.transaction(group_key(GROUP_ID)) as conn:
        await groups_service.delete_group(
            group_id=GROUP_ID, acting_user_id=creator, conn=conn, log=logger
        )

    # Try to read the group again
    async with store.read() as conn:
        with pytest.raises(groups_service.GroupNotFound):
            await groups_service.read_by_id(group_id=GROUP_ID, conn=conn, log=logger)


@pytest.mark.asyncio(loop_scope="session")
async def test_creator_always_admin_and_member(store, logger, new_user):
    creator = new_user("creator")
    member = new_user("member")
    other_admin = new_user("admin")

    async with store.transaction() as conn:
        group = await groups_service.create(
            group_name="Book club",
            created_by_user_id=creator,
            member_ids=[member, member],
            admin_ids=[other_admin],
            last_admin_rule="delete",
            conn=conn,
            log=logger,
        )

    core = group.to_core()
    assert core.members == [member, other_admin, creator]
    assert core.admins == [other_admin, creator]
    assert set(core.admins) <= set(core.members)
    assert core.last_admin_rule == LastAdminRule.DELETE


@pytest.mark.asyncio(loop_scope="session")
@pytest.mark.parametrize(
    "kwargs",
    [
        {"group_name": "ab"},
        {"group_name": "x" * 51},
        {"group_name": "<script>"},
        {"last_admin_rule": "vote"},
        {"member_ids": ["one;two"]},
        {"admin_ids": [" "]},
    ],
)
async def test_create_group_invalid(store, logger, new_user, kwargs):
    arguments = {"group_name": "valid name", "created_by_user_id": new_user("creator")}
    arguments.update(kwargs)

    with pytest.raises(groups_service.InvalidRequest):
        async with store.transaction() as conn:
            await groups_service.create(**arguments, conn=conn, log=logger)


@pytest.mark.asyncio(loop_scope="session")
async def test_update_group(store, logger, new_user, make_group):
    group_id, creator = await make_group(member_ids=[new_user("member")])

    async with store.transaction(group_key(group_id)) as conn:
        group = await groups_service.update(
            group_id=group_id,
            acting_user_id=creator,
            group_name="  renamed   group ",
            last_admin_rule=LastAdminRule.DELETE,
            conn=conn,
            log=logger,
        )

    assert group.group_name == "renamed group"
    assert group.rule == LastAdminRule.DELETE

    async with store.read() as conn:
        group = await groups_service.read_by_id(group_id=group_id, conn=conn, log=logger)
        assert group.group_name == "renamed group"
        assert group.rule == LastAdminRule.DELETE


@pytest.mark.asyncio(loop_scope="session")
async def test_update_and_delete_require_admin(store, logger, new_user, make_group):
    member = new_user("member")
    group_id, _ = await make_group(member_ids=[member])

    with pytest.raises(groups_service.NotGroupAdmin):
        async with store.transaction(group_key(group_id)) as conn:
            await groups_service.update(
                group_id=group_id,
                acting_user_id=member,
                group_name="taken over",
                conn=conn,
                log=logger,
            )

    with pytest.raises(groups_service.NotGroupAdmin):
        async with store.transaction(group_key(group_id)) as conn:
            await groups_service.delete_group(
                group_id=group_id, acting_user_id=member, conn=conn, log=logger
            )

    async with store.read() as conn:
        group = await groups_service.read_by_id(group_id=group_id, conn=conn, log=logger)
        assert group.group_name == "test group"


@pytest.mark.asyncio(loop_scope="session")
async def test_missing_group(store, logger, new_user):
    missing = uuid7()
    user = new_user("user")

    async with store.read() as conn:
        assert not await groups_service.is_member(
            group_id=missing, user_id=user, conn=conn, log=logger
        )

    for operation in (groups_service.join, groups_service.leave):
        with pytest.raises(groups_service.GroupNotFound):
            async with store.transaction(group_key(missing)) as conn:
                await operation(group_id=missing, user_id=user, conn=conn, log=logger)

    with pytest.raises(groups_service.GroupNotFound):
        async with store.transaction(group_key(missing)) as conn:
            await groups_service.delete_group(
                group_id=missing, acting_user_id=user, conn=conn, log=logger
            )
