"""
Tests reporting users and the automatic ban once enough distinct users
have reported the same target.
"""

import pytest

from groupmod.core.ban import SYSTEM_ACTOR, BanReason, BanScope
from groupmod.core.uuid import uuid7
from groupmod.service import access
from groupmod.service import bans as bans_service
from groupmod.service import groups as groups_service
from groupmod.service.reports import ReportAggregate
from groupmod.service.store import group_key, moderation_key


@pytest.fixture
def report_user(store, logger, directory, reports):
    """
    Report `target` on behalf of `reporter` in its own transaction.
    """

    async def make(target, reporter, **kwargs):
        group_id = kwargs.get("group_id")
        keys = [moderation_key(target, group_id)]
        if group_id is not None:
            keys.append(group_key(group_id))

        async with store.transaction(*keys) as conn:
            result = await bans_service.report(
                target_user_id=target,
                reporter_id=reporter,
                aggregate=reports,
                users=directory,
                conn=conn,
                log=logger,
                **kwargs,
            )

        return result

    return make


@pytest.mark.asyncio(loop_scope="session")
async def test_automatic_ban(store, new_user, reports, report_user):
    target = new_user("target")
    reporters = [new_user("reporter") for _ in range(3)]
    key = reports.key_for(target)

    first = await report_user(target, reporters[0])
    assert first.message == "User reported. Reports: 1/3"
    assert first.report_count == 1
    assert not first.auto_banned
    assert first.ban is None

    second = await report_user(target, reporters[1], reason=BanReason.HARASSMENT)
    assert second.message == "User reported. Reports: 2/3"
    assert reports.reporters(key) == reporters[:2]

    third = await report_user(target, reporters[2])
    assert third.auto_banned
    assert third.report_count == 3

    ban = third.ban
    assert ban.banned_by_user_id == SYSTEM_ACTOR
    assert ban.reason == BanReason.MULTIPLE_REPORTS
    assert ban.scope == BanScope.GLOBAL
    assert ban.reporter_ids == reporters

    assert reports.count(key) == 0

    async with store.read() as conn:
        assert await access.is_banned(user_id=target, conn=conn)


@pytest.mark.asyncio(loop_scope="session")
async def test_rejected_reports(new_user, reports, report_user):
    target, reporter = new_user("target"), new_user("reporter")

    await report_user(target, reporter)

    with pytest.raises(bans_service.DuplicateReport):
        await report_user(target, reporter)

    with pytest.raises(bans_service.SelfModeration):
        await report_user(reporter, reporter)

    with pytest.raises(bans_service.UserNotFound):
        await report_user("ghost", reporter)

    with pytest.raises(groups_service.GroupNotFound):
        await report_user(target, new_user("other"), group_id=uuid7())

    with pytest.raises(bans_service.InvalidRequest):
        await report_user(target, new_user("other"), reason="bored")

    assert reports.count(reports.key_for(target)) == 1


@pytest.mark.asyncio(loop_scope="session")
async def test_reports_against_banned_user(new_user, reports, report_user):
    target = new_user("target")

    for _ in range(3):
        await report_user(target, new_user("reporter"))

    key = reports.key_for(target)

    # Further reports are still accepted while below the threshold
    late = [new_user("late") for _ in range(2)]
    for reporter in late:
        result = await report_user(target, reporter)
        assert not result.auto_banned

    assert reports.reporters(key) == late

    # Reaching the threshold again finds the existing ban
    with pytest.raises(bans_service.DuplicateBan):
        await report_user(target, new_user("late"))

    assert reports.reporters(key) == late


@pytest.mark.asyncio(loop_scope="session")
async def test_group_reports_are_separate(new_user, make_group, reports, report_user):
    target = new_user("target")
    group_id, _ = await make_group(member_ids=[target])
    reporter = new_user("reporter")

    await report_user(target, reporter)
    await report_user(target, reporter, group_id=group_id)

    assert reports.count(reports.key_for(target)) == 1
    assert reports.count(reports.key_for(target, group_id)) == 1


@pytest.mark.asyncio(loop_scope="session")
async def test_group_automatic_ban_evicts(
    store, logger, new_user, make_group, report_user
):
    target, bystander = new_user("target"), new_user("bystander")
    group_id, creator = await make_group(member_ids=[target, bystander])

    for _ in range(3):
        result = await report_user(target, new_user("reporter"), group_id=group_id)

    assert result.auto_banned
    assert result.ban.scope == BanScope.GROUP
    assert result.ban.group_id == group_id

    async with store.read() as conn:
        group = await groups_service.read_by_id(
            group_id=group_id, conn=conn, log=logger
        )
        assert await access.is_banned(user_id=target, conn=conn, group_id=group_id)
        assert not await access.is_banned(user_id=target, conn=conn)

    assert group.members == [bystander, creator]


@pytest.mark.asyncio(loop_scope="session")
async def test_automatic_ban_of_last_admin(
    store, logger, new_user, make_group, report_user
):
    member = new_user("member")
    group_id, creator = await make_group(member_ids=[member])

    for _ in range(3):
        await report_user(creator, new_user("reporter"), group_id=group_id)

    async with store.read() as conn:
        group = await groups_service.read_by_id(
            group_id=group_id, conn=conn, log=logger
        )

    assert group.admins == [member]
    assert group.members == [member]


def test_aggregate():
    aggregate = ReportAggregate(threshold=2)
    key = aggregate.key_for("target")

    assert aggregate.count(key) == 0
    assert aggregate.record(key, "a") == 1
    assert aggregate.record(key, "a") == 1
    assert aggregate.record(key, "b") == 2
    assert aggregate.has_reported(key, "b")
    assert aggregate.reporters(key) == ["a", "b"]
    assert len(aggregate) == 1

    aggregate.clear(key)
    assert aggregate.count(key) == 0
    assert len(aggregate) == 0

    aggregate.record(aggregate.key_for("target", "group"), "a")
    aggregate.reset()
    assert len(aggregate) == 0


def test_aggregate_keys():
    assert ReportAggregate.key_for("target") != ReportAggregate.key_for(
        "target", "group"
    )


def test_aggregate_threshold():
    with pytest.raises(ValueError):
        ReportAggregate(threshold=0)


@pytest.mark.asyncio(loop_scope="session")
@pytest.mark.parametrize(
    "target, reporter",
    [
        ("target", "evil;injected"),
        ("target", "  "),
        ("", "reporter"),
        ("one;two", "reporter"),
    ],
)
async def test_malformed_ids(directory, reports, report_user, target, reporter):
    directory.add(target)
    directory.add(reporter)

    with pytest.raises(bans_service.InvalidRequest):
        await report_user(target, reporter)

    assert len(reports) == 0


@pytest.mark.asyncio(loop_scope="session")
async def test_rolled_back_report_is_not_counted(
    store, logger, directory, new_user, reports
):
    target, reporter = new_user("target"), new_user("reporter")

    with pytest.raises(RuntimeError):
        async with store.transaction(moderation_key(target)) as conn:
            result = await bans_service.report(
                target_user_id=target,
                reporter_id=reporter,
                aggregate=reports,
                users=directory,
                conn=conn,
                log=logger,
            )
            assert result.report_count == 1
            raise RuntimeError("failure after the report")

    assert reports.count(reports.key_for(target)) == 0


@pytest.mark.asyncio(loop_scope="session")
async def test_rolled_back_automatic_ban_keeps_reports(
    store, logger, directory, new_user, reports, report_user
):
    target = new_user("target")
    reporters = [new_user("reporter") for _ in range(3)]
    key = reports.key_for(target)

    for reporter in reporters[:2]:
        await report_user(target, reporter)

    with pytest.raises(RuntimeError):
        async with store.transaction(moderation_key(target)) as conn:
            result = await bans_service.report(
                target_user_id=target,
                reporter_id=reporters[2],
                aggregate=reports,
                users=directory,
                conn=conn,
                log=logger,
            )
            assert result.auto_banned
            raise RuntimeError("failure before the commit")

    async with store.read() as conn:
        assert not await access.is_banned(user_id=target, conn=conn)

    assert reports.reporters(key) == reporters[:2]

    # Retrying the same report now goes through
    result = await report_user(target, reporters[2])

    assert result.auto_banned
    assert result.ban.reporter_ids == reporters
    assert reports.count(key) == 0
