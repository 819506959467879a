"""
Ban ORM
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel

from groupmod.core.ban import BanData, BanReason, BanScope
from groupmod.core.ids import split_ids
from groupmod.core.uuid import UUID, uuid7


def as_utc(moment: datetime) -> datetime:
    """
    Some backends (sqlite) hand back naive datetimes; everything we store is
    UTC, so attach the zone back.
    """
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)

    return moment


class Ban(SQLModel, table=True):
    ban_id: UUID = Field(primary_key=True, default_factory=uuid7)

    banned_user_id: str = Field(index=True)
    banned_by_user_id: str
    reason: str
    banned_at: datetime = Field(sa_column=Column(DateTime(timezone=True)))
    expires_at: datetime | None = Field(
        sa_column=Column(DateTime(timezone=True)), default=None
    )
    # Bans are never deleted; unbanning flips this flag.
    is_active: bool = True
    # A ban without a group is global.
    group_id: UUID | None = Field(default=None, index=True)
    reporter_ids: str = Field(default="")

    @property
    def scope(self) -> BanScope:
        return BanScope.GLOBAL if self.group_id is None else BanScope.GROUP

    def has_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and as_utc(self.expires_at) <= now

    def in_effect(self, now: datetime) -> bool:
        """
        Check whether this ban currently blocks its user.
        """
        return self.is_active and not self.has_expired(now)

    def blocks(self, group_id: UUID | None, now: datetime) -> bool:
        """
        Check whether this ban blocks its user from acting, either anywhere
        (`group_id` is None) or within the group `group_id`.
        """
        if not self.in_effect(now):
            return False

        return self.group_id is None or self.group_id == group_id

    def to_core(self) -> BanData:
        return BanData(
            ban_id=self.ban_id,
            banned_user_id=self.banned_user_id,
            banned_by_user_id=self.banned_by_user_id,
            reason=BanReason(self.reason),
            scope=self.scope,
            group_id=self.group_id,
            banned_at=as_utc(self.banned_at),
            expires_at=as_utc(self.expires_at) if self.expires_at else None,
            is_active=self.is_active,
            reporter_ids=split_ids(self.reporter_ids),
        )
