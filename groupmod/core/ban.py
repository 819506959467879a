"""
Core ban data models.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel

from groupmod.core.uuid import UUID

# The actor recorded on bans issued automatically from accumulated reports.
SYSTEM_ACTOR = "system"


class BanReason(str, Enum):
    SPAM = "spam"
    HARASSMENT = "harassment"
    INAPPROPRIATE_CONTENT = "inappropriate_content"
    VIOLATION_TERMS = "violation_terms"
    MULTIPLE_REPORTS = "multiple_reports"
    ADMIN_DECISION = "admin_decision"


class BanScope(str, Enum):
    GLOBAL = "global"
    GROUP = "group"


class BanData(BaseModel):
    ban_id: UUID
    banned_user_id: str
    banned_by_user_id: str
    reason: BanReason
    scope: BanScope
    group_id: UUID | None
    banned_at: datetime
    expires_at: datetime | None
    is_active: bool
    reporter_ids: list[str]
