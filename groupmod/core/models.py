"""
Pydantic models for responses from the membership and moderation services.
"""

from typing import Literal

from pydantic import BaseModel

from groupmod.core.ban import BanData
from groupmod.core.group import GroupData
from groupmod.core.uuid import UUID


class LeaveResult(BaseModel):
    outcome: Literal["left", "admin_promoted", "group_deleted"]
    group_id: UUID
    user_id: str
    promoted_user_id: str | None = None
    group: GroupData | None = None


class ReportResult(BaseModel):
    message: str
    report_count: int
    threshold: int
    auto_banned: bool = False
    ban: BanData | None = None


class AccessVerdict(BaseModel):
    user_id: str
    group_id: UUID | None = None
    allowed: bool
    ban_id: UUID | None = None


class MembershipCheckResponse(BaseModel):
    group_id: UUID
    user_id: str
    is_member: bool
    is_banned: bool
