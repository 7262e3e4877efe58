"""Request context for tenancy enforcement."""

from dataclasses import dataclass


@dataclass(frozen=True)
class RequestContext:
    """Request context containing the authenticated user identity.

    Used to enforce ownership boundaries in all database operations.
    """

    user_id: str
