"""
Core group data models.
"""

from enum import Enum

from pydantic import BaseModel

from groupmod.core.uuid import UUID


class LastAdminRule(str, Enum):
    """
    What happens to a group when its last administrator goes away.
    """

    PROMOTE = "promote"
    DELETE = "delete"


class GroupData(BaseModel):
    group_id: UUID
    group_name: str
    admins: list[str]
    members: list[str]
    pending_requests: list[str]
    last_admin_rule: LastAdminRule
