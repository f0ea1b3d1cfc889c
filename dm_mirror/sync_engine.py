from __future__ import annotations

from typing import Optional, Sequence

from .correlation_store import CorrelationStore
from .errors import ChannelUnavailable, MirrorError, MirrorNotFound, StoreError
from .logger_factory import get_logger
from .outcomes import (
    CreateOutcome,
    CreateResult,
    DeleteOutcome,
    DeleteResult,
    EditOutcome,
    EditResult,
    describe,
)
from .utils.correlation import make_correlation_id
from .utils.logfmt import fmt, kv


class SyncEngine:
    """Keeps mirror messages in step with the DMs they were copied from.

    Lifecycle of one original_id: UNMIRRORED -> MIRRORED -> (edited)* -> DELETED.
    Every handler ends in exactly one outcome, tells the requester about it over DM
    (best-effort) and never raises. When the platform change succeeded but the store
    write did not, the mismatch is logged and left for manual reconciliation.
    """

    def __init__(self, store: CorrelationStore, transport, gate, logger=None):
        self.store = store
        self.transport = transport
        self.gate = gate
        self.log = logger or get_logger("SyncEngine")
        # Mirror ids this engine is deleting; their gateway delete echo is not out-of-band
        self._deleting: set[str] = set()

    async def _notify(self, user, outcome) -> None:
        await self.transport.notify_sender(user, describe(outcome))

    async def handle_create(self, original_id: str, author, content: str, attachments: Sequence = ()) -> CreateOutcome:
        original_id = str(original_id)
        corr = make_correlation_id("create", original_id)
        try:
            channel = await self.transport.resolve_channel()
        except ChannelUnavailable as e:
            self.log.error(f"create-channel-unavailable {kv(error=str(e), correlation=corr)}")
            outcome = CreateOutcome(CreateResult.CHANNEL_UNAVAILABLE, detail=str(e))
            await self._notify(author, outcome)
            return outcome

        if not await self.gate.can_send(author.id, channel):
            self.log.info(f"create-denied {kv(user=author.id, channel=channel.id, correlation=corr)}")
            outcome = CreateOutcome(CreateResult.PERMISSION_DENIED)
            await self._notify(author, outcome)
            return outcome

        try:
            mirror_id = await self.transport.send(channel, content, attachments)
        except ChannelUnavailable as e:
            self.log.error(f"create-send-unavailable {kv(error=str(e), correlation=corr)}")
            outcome = CreateOutcome(CreateResult.CHANNEL_UNAVAILABLE, detail=str(e))
            await self._notify(author, outcome)
            return outcome
        except MirrorError as e:
            self.log.error(f"create-send-failed {kv(error=repr(e), correlation=corr)}")
            outcome = CreateOutcome(CreateResult.FAILED, detail=str(e))
            await self._notify(author, outcome)
            return outcome

        try:
            await self.store.put(original_id, mirror_id, str(author.id), content)
        except StoreError as e:
            self.log.error(
                f"inconsistency-orphan-mirror {kv(original=original_id, mirror=mirror_id, error=repr(e), correlation=corr)}"
            )
            outcome = CreateOutcome(CreateResult.STORE_FAILED, mirror_id=mirror_id, detail=str(e))
            await self._notify(author, outcome)
            return outcome

        self.log.info(f"mirrored {kv(original=original_id, mirror=mirror_id, user=author.id, correlation=corr)}")
        return CreateOutcome(CreateResult.MIRRORED, mirror_id=mirror_id)

    async def _owned_record(self, original_id: str, requester, corr: str):
        """Return (record, None) when the requester owns the mapping, else (None, reason)."""
        try:
            record = await self.store.get_by_original_id(original_id)
        except StoreError as e:
            self.log.error(f"lookup-failed {kv(original=original_id, error=repr(e), correlation=corr)}")
            return None, "failed"
        if record is None:
            self.log.info(f"lookup-miss {kv(original=original_id, correlation=corr)}")
            return None, "not-found"
        requester_id = str(getattr(requester, "id", "")) if requester is not None else ""
        if record.author_id != requester_id:
            self.log.warning(
                f"not-owner {kv(original=original_id, owner=record.author_id, requester=requester_id or None, correlation=corr)}"
            )
            return None, "not-owner"
        return record, None

    async def handle_edit(self, original_id: str, new_content: str, attachments: Sequence, requester) -> EditOutcome:
        original_id = str(original_id)
        corr = make_correlation_id("edit", original_id)
        record, reason = await self._owned_record(original_id, requester, corr)
        if record is None:
            outcome = EditOutcome({
                "not-found": EditResult.NOT_FOUND_IN_STORE,
                "not-owner": EditResult.NOT_OWNER,
            }.get(reason, EditResult.FAILED))
            await self._notify(requester, outcome)
            return outcome

        try:
            channel = await self.transport.resolve_channel()
        except ChannelUnavailable as e:
            self.log.error(f"edit-channel-unavailable {kv(error=str(e), correlation=corr)}")
            outcome = EditOutcome(EditResult.FAILED, detail=str(e))
            await self._notify(requester, outcome)
            return outcome

        try:
            await self.transport.edit(channel, record.mirror_id, new_content, attachments)
        except MirrorNotFound:
            # Record is left as-is; only a delete clears it
            self.log.warning(f"edit-mirror-missing {kv(original=original_id, mirror=record.mirror_id, correlation=corr)}")
            outcome = EditOutcome(EditResult.MIRROR_MISSING)
            await self._notify(requester, outcome)
            return outcome
        except MirrorError as e:
            self.log.error(f"edit-failed {kv(original=original_id, error=repr(e), correlation=corr)}")
            outcome = EditOutcome(EditResult.FAILED, detail=str(e))
            await self._notify(requester, outcome)
            return outcome

        try:
            await self.store.update_content(original_id, new_content)
        except StoreError as e:
            self.log.error(f"inconsistency-stale-content {kv(original=original_id, error=repr(e), correlation=corr)}")
            outcome = EditOutcome(EditResult.STORE_FAILED, detail=str(e))
            await self._notify(requester, outcome)
            return outcome

        self.log.info(f"edited {kv(original=original_id, mirror=record.mirror_id, correlation=corr)}")
        outcome = EditOutcome(EditResult.EDITED)
        await self._notify(requester, outcome)
        return outcome

    async def handle_delete(self, original_id: str, requester) -> DeleteOutcome:
        original_id = str(original_id)
        corr = make_correlation_id("delete", original_id)
        record, reason = await self._owned_record(original_id, requester, corr)
        if record is None:
            outcome = DeleteOutcome({
                "not-found": DeleteResult.NOT_FOUND_IN_STORE,
                "not-owner": DeleteResult.NOT_OWNER,
            }.get(reason, DeleteResult.FAILED))
            await self._notify(requester, outcome)
            return outcome

        try:
            channel = await self.transport.resolve_channel()
        except ChannelUnavailable as e:
            self.log.error(f"delete-channel-unavailable {kv(error=str(e), correlation=corr)}")
            outcome = DeleteOutcome(DeleteResult.FAILED, detail=str(e))
            await self._notify(requester, outcome)
            return outcome

        self._deleting.add(record.mirror_id)
        try:
            return await self._unmirror(channel, record, requester, corr)
        finally:
            self._deleting.discard(record.mirror_id)

    async def _unmirror(self, channel, record, requester, corr: str) -> DeleteOutcome:
        original_id = record.original_id
        result = DeleteResult.DELETED
        try:
            await self.transport.delete(channel, record.mirror_id)
        except MirrorNotFound:
            self.log.warning(f"delete-mirror-missing {kv(original=original_id, mirror=record.mirror_id, correlation=corr)}")
            result = DeleteResult.MIRROR_MISSING
        except MirrorError as e:
            self.log.error(f"delete-failed {kv(original=original_id, error=repr(e), correlation=corr)}")
            outcome = DeleteOutcome(DeleteResult.FAILED, detail=str(e))
            await self._notify(requester, outcome)
            return outcome

        try:
            await self.store.delete_by_original_id(original_id)
        except StoreError as e:
            self.log.error(f"inconsistency-orphan-record {kv(original=original_id, mirror=record.mirror_id, error=repr(e), correlation=corr)}")
            outcome = DeleteOutcome(DeleteResult.STORE_FAILED, detail=str(e))
            await self._notify(requester, outcome)
            return outcome

        self.log.info(f"unmirrored {fmt('original', original_id)} {fmt('result', result.value)} {fmt('correlation', corr)}")
        outcome = DeleteOutcome(result)
        await self._notify(requester, outcome)
        return outcome

    async def handle_mirror_removed(self, mirror_id: str) -> Optional[str]:
        """Forget the mapping for a mirror deleted from the channel by someone else.

        Returns the original_id that was unmapped, or None when nothing matched.
        """
        mirror_id = str(mirror_id)
        corr = make_correlation_id("mirror-removed", mirror_id)
        try:
            record = await self.store.get_by_mirror_id(mirror_id)
            if record is None or mirror_id in self._deleting:
                self.log.debug(f"mirror-removed-ignored {kv(mirror=mirror_id, mapped=record is not None, correlation=corr)}")
                return None
            await self.store.delete_by_mirror_id(mirror_id)
        except StoreError as e:
            self.log.error(f"mirror-removed-store-failed {kv(mirror=mirror_id, error=repr(e), correlation=corr)}")
            return None
        self.log.info(f"mirror-removed-out-of-band {kv(original=record.original_id, mirror=mirror_id, correlation=corr)}")
        return record.original_id
