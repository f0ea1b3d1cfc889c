from __future__ import annotations

import discord
from discord import Intents
from discord.ext import commands

from .event_dispatcher import MessageCreated, MessageDeleted, MessageEdited, MirrorRemoved
from .utils.logfmt import kv


def _is_dm(channel) -> bool:
    return isinstance(channel, discord.DMChannel)


class DiscordClientAdapter(commands.Bot):
    """Turns gateway callbacks into dispatcher events.

    Only one-to-one DMs from humans are forwarded. Deletions in the mirror channel
    are forwarded too so mappings for mirrors removed by moderators get dropped.
    """

    def __init__(self, dispatcher, mirror_channel_id: int | None, intents_cfg: dict, logger):
        intents = Intents.default()
        intents.dm_messages = True
        intents.message_content = True
        intents.members = bool(intents_cfg.get("members", False))
        super().__init__(command_prefix=commands.when_mentioned, intents=intents)
        self.dispatcher = dispatcher
        self.mirror_channel_id = mirror_channel_id
        self.log = logger

    async def setup_hook(self) -> None:
        # Nothing to register: the bot has no commands
        self.log.info("setup-complete commands=0")

    async def on_ready(self):
        if self.user is not None:
            self.log.info(f"Logged in as {self.user} (ID: {self.user.id})")
        else:
            self.log.info("Logged in (user not available yet)")

    async def on_message(self, message: discord.Message):
        if message.author.bot or not _is_dm(message.channel):
            return
        self.log.debug(f"dm-create {kv(msg=message.id, user=message.author.id, files=len(message.attachments))}")
        self.dispatcher.submit(MessageCreated(
            id=str(message.id),
            channel_id=str(message.channel.id),
            author=message.author,
            content=message.content,
            attachments=list(message.attachments),
        ))

    def _submit_edit(self, message: discord.Message) -> None:
        self.log.debug(f"dm-edit {kv(msg=message.id, user=message.author.id)}")
        self.dispatcher.submit(MessageEdited(
            id=str(message.id),
            channel_id=str(message.channel.id),
            author=message.author,
            new_content=message.content,
            attachments=list(message.attachments),
        ))

    async def on_message_edit(self, before: discord.Message, after: discord.Message):
        if after.author.bot or not _is_dm(after.channel):
            return
        # Link embeds resolving also arrive as edits
        if before.content == after.content and len(before.attachments) == len(after.attachments):
            return
        self._submit_edit(after)

    async def on_raw_message_edit(self, payload: discord.RawMessageUpdateEvent):
        # Cached messages are covered by on_message_edit
        if payload.cached_message is not None or payload.guild_id is not None:
            return
        if "content" not in payload.data:
            return
        try:
            channel = self.get_channel(payload.channel_id) or await self.fetch_channel(payload.channel_id)
            if not _is_dm(channel):
                return
            message = await channel.fetch_message(payload.message_id)
        except discord.HTTPException as e:
            self.log.warning(f"dm-edit-fetch-failed {kv(msg=payload.message_id, error=repr(e))}")
            return
        if message.author.bot:
            return
        self._submit_edit(message)

    async def on_raw_bulk_message_delete(self, payload: discord.RawBulkMessageDeleteEvent):
        # Purges only happen in guild channels, so only the mirror channel matters
        if self.mirror_channel_id is None or payload.channel_id != self.mirror_channel_id:
            return
        self.log.debug(f"mirror-bulk-delete {kv(channel=payload.channel_id, count=len(payload.message_ids))}")
        for message_id in sorted(payload.message_ids):
            self.dispatcher.submit(MirrorRemoved(mirror_id=str(message_id)))

    async def on_raw_message_delete(self, payload: discord.RawMessageDeleteEvent):
        if self.mirror_channel_id is not None and payload.channel_id == self.mirror_channel_id:
            self.dispatcher.submit(MirrorRemoved(mirror_id=str(payload.message_id)))
            return
        if payload.guild_id is not None:
            return
        cached = payload.cached_message
        if cached is not None:
            if cached.author.bot:
                return
            requester = cached.author
        else:
            # Only the human side of a DM can delete their own messages there
            channel = self.get_channel(payload.channel_id)
            if channel is None:
                try:
                    channel = await self.fetch_channel(payload.channel_id)
                except discord.HTTPException as e:
                    self.log.warning(f"dm-delete-channel-fetch-failed {kv(channel=payload.channel_id, error=repr(e))}")
            if channel is not None and not _is_dm(channel):
                return
            requester = getattr(channel, "recipient", None)
        self.log.debug(f"dm-delete {kv(msg=payload.message_id, user=getattr(requester, 'id', None))}")
        self.dispatcher.submit(MessageDeleted(
            id=str(payload.message_id),
            channel_id=str(payload.channel_id),
            requester=requester,
        ))
