"""
User identifiers and the codec for list-valued row fields.

User identifiers are opaque strings handed to us by the identity layer. Lists
of them are persisted as a single delimited string, so the delimiter itself
may never appear inside an identifier.
"""

from typing import Iterable

LIST_DELIMITER = ";"


def split_ids(value: str | None) -> list[str]:
    """
    Decode a delimited string into its list of identifiers, in stored order.
    """
    if not value:
        return []

    return [x for x in value.split(LIST_DELIMITER) if x]


def join_ids(ids: Iterable[str]) -> str:
    """
    Encode identifiers into a delimited string. Duplicates are dropped,
    keeping the first occurrence.
    """
    return LIST_DELIMITER.join(dict.fromkeys(ids))


def is_valid_user_id(user_id: str) -> bool:
    return bool(user_id) and bool(user_id.strip()) and LIST_DELIMITER not in user_id
