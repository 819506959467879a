"""
Meta functionality for the database.
"""

from .ban import Ban
from .group import Group

ALL_TABLES = (
    Ban,
    Group,
)
