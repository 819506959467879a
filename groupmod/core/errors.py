"""
Error taxonomy shared by the membership and moderation services.

Every failure raised by the services is a `ModerationError` carrying one of
four kinds. The transport layer maps the kind onto a status code; nothing
in the core depends on how that happens.
"""

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    VALIDATION = "validation"


class ModerationError(Exception):
    kind: ErrorKind


class NotFound(ModerationError):
    """
    A group, ban or user reference does not resolve.
    """

    kind = ErrorKind.NOT_FOUND


class Forbidden(ModerationError):
    """
    The actor lacks administrator privilege, or is blocked by an active ban.
    """

    kind = ErrorKind.FORBIDDEN


class Conflict(ModerationError):
    """
    The requested transition violates a state invariant.
    """

    kind = ErrorKind.CONFLICT


class Invalid(ModerationError):
    """
    Malformed input, detected before anything is written.
    """

    kind = ErrorKind.VALIDATION
