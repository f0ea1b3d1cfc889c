from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class CreateResult(str, Enum):
    MIRRORED = "mirrored"
    CHANNEL_UNAVAILABLE = "channel-unavailable"
    PERMISSION_DENIED = "permission-denied"
    STORE_FAILED = "store-failed"
    FAILED = "failed"


class EditResult(str, Enum):
    EDITED = "edited"
    NOT_FOUND_IN_STORE = "not-found-in-store"
    NOT_OWNER = "not-owner"
    MIRROR_MISSING = "mirror-missing"
    STORE_FAILED = "store-failed"
    FAILED = "failed"


class DeleteResult(str, Enum):
    DELETED = "deleted"
    NOT_FOUND_IN_STORE = "not-found-in-store"
    NOT_OWNER = "not-owner"
    MIRROR_MISSING = "mirror-missing"
    STORE_FAILED = "store-failed"
    FAILED = "failed"


@dataclass(frozen=True)
class CreateOutcome:
    result: CreateResult
    mirror_id: Optional[str] = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.result is CreateResult.MIRRORED


@dataclass(frozen=True)
class EditOutcome:
    result: EditResult
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.result is EditResult.EDITED


@dataclass(frozen=True)
class DeleteOutcome:
    result: DeleteResult
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.result is DeleteResult.DELETED


# Text sent back to the requester over DM. A None entry means the outcome is not announced.
_CREATE_TEXT = {
    CreateResult.MIRRORED: None,
    CreateResult.CHANNEL_UNAVAILABLE: "The destination channel could not be found.",
    CreateResult.PERMISSION_DENIED: "You do not have permission to send messages in the destination channel.",
    CreateResult.STORE_FAILED: "Your message was posted, but it could not be recorded; later edits and deletes will not sync.",
    CreateResult.FAILED: "Failed to forward your message.",
}

_EDIT_TEXT = {
    EditResult.EDITED: "The message has been edited.",
    EditResult.NOT_FOUND_IN_STORE: "The message could not be found.",
    EditResult.NOT_OWNER: "You are not the sender of this message.",
    EditResult.MIRROR_MISSING: "The forwarded message no longer exists in the channel.",
    EditResult.STORE_FAILED: "The message was edited, but the change could not be recorded.",
    EditResult.FAILED: "Failed to edit the message.",
}

_DELETE_TEXT = {
    DeleteResult.DELETED: "The message has been deleted.",
    DeleteResult.NOT_FOUND_IN_STORE: "The message could not be found.",
    DeleteResult.NOT_OWNER: "You are not the sender of this message.",
    DeleteResult.MIRROR_MISSING: "The forwarded message was already gone from the channel.",
    DeleteResult.STORE_FAILED: "The message was deleted, but its record could not be removed.",
    DeleteResult.FAILED: "Failed to delete the message.",
}


def describe(outcome: CreateOutcome | EditOutcome | DeleteOutcome) -> Optional[str]:
    """Return the notification text for an outcome, or None when it is silent."""
    if isinstance(outcome, CreateOutcome):
        return _CREATE_TEXT[outcome.result]
    if isinstance(outcome, EditOutcome):
        return _EDIT_TEXT[outcome.result]
    if isinstance(outcome, DeleteOutcome):
        return _DELETE_TEXT[outcome.result]
    raise TypeError(f"unknown outcome type: {type(outcome).__name__}")
