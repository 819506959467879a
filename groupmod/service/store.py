"""
The entity store: transactions over the group and ban tables, serialised
per entity.

Every mutating operation reads the current row, changes it in memory and
writes it back. Two requests doing that to the same row at the same time
would overwrite each other, so mutations run inside
`EntityStore.transaction`, which holds an asyncio lock for each entity key
from before the read until after the commit.
"""

import asyncio
from collections.abc import AsyncIterator, Callable, Hashable
from contextlib import AsyncExitStack, asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession

from groupmod.config.managers import AsyncSessionManager
from groupmod.core.uuid import UUID

AFTER_COMMIT = "groupmod.after_commit"


def after_commit(conn: AsyncSession, callback: Callable[[], object]) -> None:
    """
    Run `callback` once the transaction on `conn` has committed. Used for
    in-memory state that must only change when the rows it describes do. If
    the transaction rolls back, the callback is dropped.

    Only transactions opened with `EntityStore.transaction` run these.
    """
    conn.info.setdefault(AFTER_COMMIT, []).append(callback)


def group_key(group_id: UUID) -> tuple[str, str]:
    """
    Lock key for a group row.
    """
    return ("group", str(group_id))


def moderation_key(user_id: str, group_id: UUID | None = None) -> tuple[str, str, str]:
    """
    Lock key for the bans of one user in one scope. The same key guards the
    reports aggregated against that user and scope.
    """
    return ("moderation", user_id, "" if group_id is None else str(group_id))


class KeyedLocks:
    """
    A registry of asyncio locks, one per key. Locks are created on demand and
    dropped once nobody holds or waits on them.
    """

    def __init__(self):
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._waiters: dict[Hashable, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def _hold_one(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1

        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    @asynccontextmanager
    async def hold(self, *keys: Hashable) -> AsyncIterator[None]:
        """
        Hold the locks for all `keys`. Keys are always acquired in the same
        (sorted) order so that two callers asking for overlapping sets cannot
        deadlock.
        """
        async with AsyncExitStack() as stack:
            for key in sorted(set(keys), key=repr):
                await stack.enter_async_context(self._hold_one(key))

            yield


class EntityStore:
    """
    Transactions against the entity tables. Expected usage:

    store = EntityStore(manager)

    async with store.transaction(group_key(group_id)) as conn:
        await groups_service.join(group_id=group_id, user_id=user_id, conn=conn, log=log)

    The transaction commits when the block exits normally and rolls back if
    it raises, so a failed operation never leaves a partial write.
    """

    manager: AsyncSessionManager
    locks: KeyedLocks

    def __init__(self, manager: AsyncSessionManager):
        self.manager = manager
        self.locks = KeyedLocks()

    @asynccontextmanager
    async def read(self) -> AsyncIterator[AsyncSession]:
        """
        A transaction for read paths. No locks are taken.
        """
        async with self.manager.session() as conn:
            async with conn.begin():
                yield conn

    @asynccontextmanager
    async def transaction(self, *keys: Hashable) -> AsyncIterator[AsyncSession]:
        """
        A transaction holding the locks for `keys` until it has committed.
        Callbacks registered with `after_commit` run after the commit, still
        under the locks.
        """
        async with self.locks.hold(*keys):
            async with self.manager.session() as conn:
                async with conn.begin():
                    yield conn

                for callback in conn.info.pop(AFTER_COMMIT, []):
                    callback()
