"""
Group ORM
"""

from sqlmodel import Field, SQLModel

from groupmod.core.group import GroupData, LastAdminRule
from groupmod.core.ids import join_ids, split_ids
from groupmod.core.uuid import UUID, uuid7


class Group(SQLModel, table=True):
    group_id: UUID = Field(primary_key=True, default_factory=uuid7)

    group_name: str

    # Delimited lists of user ids, in insertion order. Use the accessors below
    # rather than touching these strings directly.
    admin_ids: str = Field(default="")
    member_ids: str = Field(default="")
    pending_request_ids: str = Field(default="")

    last_admin_rule: str = Field(default=LastAdminRule.PROMOTE.value)

    @property
    def admins(self) -> list[str]:
        return split_ids(self.admin_ids)

    @property
    def members(self) -> list[str]:
        return split_ids(self.member_ids)

    @property
    def pending_requests(self) -> list[str]:
        return split_ids(self.pending_request_ids)

    @property
    def rule(self) -> LastAdminRule:
        return LastAdminRule(self.last_admin_rule)

    def is_admin(self, user_id: str) -> bool:
        return user_id in self.admins

    def is_member(self, user_id: str) -> bool:
        return user_id in self.members

    def is_pending(self, user_id: str) -> bool:
        return user_id in self.pending_requests

    def add_member(self, user_id: str):
        """
        Add a user to the members, dropping any pending request they had.
        If they are already a member, this function does nothing.

        Note that all changes to the local copy of this data (as performed by
        this function) must be committed to the database separately.
        """
        self.remove_pending(user_id)
        self.member_ids = join_ids([*self.members, user_id])

    def add_admin(self, user_id: str):
        """
        Make a user an administrator. Administrators are always members, so the
        user is added to the members too.
        """
        self.add_member(user_id)
        self.admin_ids = join_ids([*self.admins, user_id])

    def add_pending(self, user_id: str):
        self.pending_request_ids = join_ids([*self.pending_requests, user_id])

    def remove_pending(self, user_id: str):
        self.pending_request_ids = join_ids(
            x for x in self.pending_requests if x != user_id
        )

    def remove_member(self, user_id: str):
        """
        Remove a user from the members, and from the administrators too.
        """
        self.admin_ids = join_ids(x for x in self.admins if x != user_id)
        self.member_ids = join_ids(x for x in self.members if x != user_id)

    def to_core(self) -> GroupData:
        """
        Convert this Group ORM object to a GroupData core object.
        """
        return GroupData(
            group_id=self.group_id,
            group_name=self.group_name,
            admins=self.admins,
            members=self.members,
            pending_requests=self.pending_requests,
            last_admin_rule=self.rule,
        )
