"""
Error kinds for the access-control core.

`Forbidden` and `Conflict` are HTTP exceptions so FastAPI renders them
directly. `NotFound` is raised by services for a missing membership row and is
rendered at the app boundary as the same 403 "Access denied" as `Forbidden`.
`InvariantViolation` means a transaction left a story without an owner; it is
handled by the app-level handler in `main.py` and never recovered.
"""

from __future__ import annotations

from fastapi import HTTPException

ACCESS_DENIED = "Access denied"


class Forbidden(HTTPException):
    """Decision denied. The detail is the same for every denial."""

    def __init__(self) -> None:
        super().__init__(status_code=403, detail=ACCESS_DENIED)


class NotFound(LookupError):
    """Membership row missing under a story the caller is allowed to ask about."""


class Conflict(HTTPException):
    def __init__(self, detail: str = "Membership already exists") -> None:
        super().__init__(status_code=409, detail=detail)


class LastOwnerConflict(Conflict):
    def __init__(self) -> None:
        super().__init__(detail="A story must keep at least one owner")


class InvariantViolation(RuntimeError):
    """A story was observed with zero owner memberships."""

    def __init__(self, story_id, message: str = "story has no owner") -> None:
        super().__init__(f"{message}: {story_id}")
        self.story_id = story_id
