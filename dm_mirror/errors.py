from __future__ import annotations


class MirrorError(Exception):
    """Base class for every failure the mirror engine knows how to report."""


class ChannelUnavailable(MirrorError):
    """The mirror channel cannot be resolved or is not a postable text destination."""


class PermissionDenied(MirrorError):
    pass


class NotFoundInStore(MirrorError):
    pass


class NotOwner(MirrorError):
    pass


class MirrorNotFound(MirrorError):
    """The mirrored message no longer exists on the platform."""


class TransportFailure(MirrorError):
    """Unexpected platform error while talking to Discord."""


class StoreError(MirrorError):
    pass


class DuplicateKey(StoreError):
    """A record for this original_id already exists."""


class NotFound(StoreError):
    """No record exists for the requested original_id."""


class StoreFailure(StoreError):
    """Unexpected persistence error (database unavailable, locked, corrupt...)."""
