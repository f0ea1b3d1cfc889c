from __future__ import annotations

import asyncio
import random
from typing import Optional, Sequence

import discord

from .errors import ChannelUnavailable, MirrorNotFound, TransportFailure
from .logger_factory import get_logger
from .utils.logfmt import kv

# The mirror is posted with the bot's privileges, not the sender's
_NO_MENTIONS = discord.AllowedMentions.none()


class MirrorTransport:
    """Discord operations the sync engine needs against the one mirror channel."""

    def __init__(
        self,
        client: discord.Client,
        channel_id: int | None,
        *,
        retry_attempts: int = 1,  # retries on transient send errors (total attempts = 1 + retries)
        retry_delay: float = 1.0,
        logger=None,
    ):
        self.client = client
        self.channel_id = channel_id
        self.retry_attempts = max(0, int(retry_attempts))
        self.retry_delay = max(0.0, float(retry_delay))
        self.log = logger or get_logger("MirrorTransport")

    @staticmethod
    def _is_postable(channel) -> bool:
        if isinstance(channel, (discord.DMChannel, discord.GroupChannel)):
            return False
        return getattr(channel, "guild", None) is not None and callable(getattr(channel, "send", None))

    async def resolve_channel(self):
        if self.channel_id is None:
            raise ChannelUnavailable("no mirror channel configured")
        channel = self.client.get_channel(self.channel_id)
        if channel is None:
            try:
                channel = await self.client.fetch_channel(self.channel_id)
            except (discord.HTTPException, discord.InvalidData) as e:
                raise ChannelUnavailable(f"channel {self.channel_id}: {e}") from e
        if not self._is_postable(channel):
            raise ChannelUnavailable(f"channel {self.channel_id} is not a guild text channel")
        return channel

    async def _to_files(self, attachments: Sequence) -> list:
        files = []
        for a in attachments or ():
            try:
                files.append(await a.to_file())
            except discord.HTTPException as e:
                raise TransportFailure(f"attachment {getattr(a, 'filename', '?')}: {e}") from e
        return files

    async def send(self, channel, content: str, attachments: Sequence = ()) -> str:
        """Post into the mirror channel and return the new message id."""
        attempts = 0
        max_attempts = 1 + self.retry_attempts
        last_exc: Optional[Exception] = None
        while attempts < max_attempts:
            attempts += 1
            # File objects are consumed by an upload, so rebuild them per attempt
            files = await self._to_files(attachments)
            try:
                sent = await channel.send(
                    content=content or None,
                    files=files or None,
                    allowed_mentions=_NO_MENTIONS,
                )
                return str(sent.id)
            except (discord.Forbidden, discord.NotFound) as e:
                raise ChannelUnavailable(f"cannot post to {getattr(channel, 'id', '?')}: {e}") from e
            except discord.HTTPException as e:
                last_exc = e
                self.log.warning(f"send-failed {kv(channel=getattr(channel, 'id', None), attempt=attempts, error=repr(e))}")
                if attempts < max_attempts and self.retry_delay:
                    await asyncio.sleep(self.retry_delay + random.uniform(0, self.retry_delay / 2))
        raise TransportFailure(f"send failed after {attempts} attempts: {last_exc}") from last_exc

    async def fetch(self, channel, mirror_id: str):
        try:
            return await channel.fetch_message(int(mirror_id))
        except discord.NotFound as e:
            raise MirrorNotFound(mirror_id) from e
        except discord.HTTPException as e:
            raise TransportFailure(f"fetch {mirror_id}: {e}") from e

    async def edit(self, channel, mirror_id: str, content: str, attachments: Sequence = ()) -> None:
        """Replace the mirror's text.

        A DM edit can only remove attachments, never add them, so the mirror keeps
        the uploads whose filenames are still attached to the original.
        """
        message = await self.fetch(channel, mirror_id)
        names = {getattr(a, "filename", None) for a in attachments or ()}
        keep = [a for a in message.attachments if a.filename in names]
        try:
            await message.edit(content=content or None, attachments=keep, allowed_mentions=_NO_MENTIONS)
        except discord.NotFound as e:
            raise MirrorNotFound(mirror_id) from e
        except discord.HTTPException as e:
            raise TransportFailure(f"edit {mirror_id}: {e}") from e

    async def delete(self, channel, mirror_id: str) -> None:
        try:
            await channel.get_partial_message(int(mirror_id)).delete()
        except discord.NotFound as e:
            raise MirrorNotFound(mirror_id) from e
        except discord.HTTPException as e:
            raise TransportFailure(f"delete {mirror_id}: {e}") from e

    async def notify_sender(self, user, text: Optional[str]) -> None:
        """Best-effort DM back to the requester; never raises."""
        if user is None or not text:
            return
        try:
            await user.send(text)
        except discord.HTTPException as e:
            # Closed DMs or blocked bot; nothing else to do
            self.log.warning(f"notify-failed {kv(user=getattr(user, 'id', None), error=repr(e))}")
