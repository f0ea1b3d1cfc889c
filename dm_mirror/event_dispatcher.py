from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional, Sequence

from .logger_factory import get_logger
from .utils.logfmt import kv


def _now() -> datetime:
    return datetime.now().astimezone()


@dataclass
class MessageCreated:
    id: str
    channel_id: str
    author: Any
    content: str
    attachments: Sequence = ()
    received_at: datetime = field(default_factory=_now)

    @property
    def key(self) -> str:
        return str(self.id)


@dataclass
class MessageEdited:
    id: str
    channel_id: str
    author: Any
    new_content: str
    attachments: Sequence = ()
    received_at: datetime = field(default_factory=_now)

    @property
    def key(self) -> str:
        return str(self.id)


@dataclass
class MessageDeleted:
    id: str
    channel_id: str
    requester: Optional[Any] = None
    received_at: datetime = field(default_factory=_now)

    @property
    def key(self) -> str:
        return str(self.id)


@dataclass
class MirrorRemoved:
    mirror_id: str
    received_at: datetime = field(default_factory=_now)

    @property
    def key(self) -> str:
        return f"mirror:{self.mirror_id}"


class EventDispatcher:
    """Single inbound queue fanned out to the sync engine.

    Events sharing a key (the DM's message id) run one after another in arrival
    order; different keys run as independent tasks.
    """

    def __init__(self, engine, logger=None):
        self.engine = engine
        self.log = logger or get_logger("EventDispatcher")
        self._inbound: asyncio.Queue = asyncio.Queue()
        self._pending: Dict[str, Deque[Any]] = defaultdict(deque)
        self._workers: Dict[str, asyncio.Task] = {}
        self._idle = asyncio.Event()
        self._idle.set()
        self._outstanding = 0

    def submit(self, event) -> None:
        self._outstanding += 1
        self._idle.clear()
        self._inbound.put_nowait(event)

    async def run(self) -> None:
        """Consume the inbound queue forever."""
        while True:
            event = await self._inbound.get()
            try:
                self._route(event)
            except Exception:
                self.log.exception(f"event-route-error {kv(event=type(event).__name__)}")
                self._done_one()
            finally:
                self._inbound.task_done()

    def _route(self, event) -> None:
        key = event.key
        self._pending[key].append(event)
        if key not in self._workers:
            self._workers[key] = asyncio.create_task(self._drain(key))

    def _done_one(self) -> None:
        self._outstanding -= 1
        if self._outstanding == 0:
            self._idle.set()

    async def _drain(self, key: str) -> None:
        dq = self._pending[key]
        try:
            while dq:
                event = dq.popleft()
                try:
                    await self._handle(event)
                except Exception:
                    self.log.exception(f"event-handler-error {kv(key=key, event=type(event).__name__)}")
                finally:
                    self._done_one()
        finally:
            self._workers.pop(key, None)
            if not dq:
                self._pending.pop(key, None)

    async def _handle(self, event):
        if isinstance(event, MessageCreated):
            return await self.engine.handle_create(event.id, event.author, event.content, event.attachments)
        if isinstance(event, MessageEdited):
            return await self.engine.handle_edit(event.id, event.new_content, event.attachments, event.author)
        if isinstance(event, MessageDeleted):
            return await self.engine.handle_delete(event.id, event.requester)
        if isinstance(event, MirrorRemoved):
            return await self.engine.handle_mirror_removed(event.mirror_id)
        self.log.warning(f"event-unknown {kv(event=type(event).__name__)}")
        return None

    async def join(self) -> None:
        """Wait until every submitted event has been handled."""
        await self._idle.wait()

    def keys(self) -> List[str]:
        return [k for k, dq in self._pending.items() if dq]
