"""
Admin succession: deciding the fate of a group whose last administrator
is going away.
"""

from pydantic import BaseModel

from .group import LastAdminRule


class Succession(BaseModel):
    """
    The decision taken for a group that has just lost its last administrator.
    Exactly one of `delete_group` and `promoted_user_id` is meaningful.
    """

    delete_group: bool
    promoted_user_id: str | None = None


def decide_succession(
    remaining_members: list[str], rule: LastAdminRule
) -> Succession:
    """
    Decide what happens when the last administrator leaves.

    Parameters
    ----------
    remaining_members: list[str]
        The group's members in stored order, without the departing
        administrator.
    rule: LastAdminRule
        The group's configured rule.

    Returns
    -------
    Succession
        The group is deleted if the rule says so or nobody is left; otherwise
        the first remaining member becomes the new administrator.
    """
    if rule == LastAdminRule.DELETE or not remaining_members:
        return Succession(delete_group=True)

    return Succession(delete_group=False, promoted_user_id=remaining_members[0])
