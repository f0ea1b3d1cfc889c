from __future__ import annotations

import discord

from .logger_factory import get_logger
from .utils.logfmt import kv


class AuthorizationGate:
    """Decides whether a DM sender may post into the mirror channel.

    The sender must be a member of the channel's guild and hold both the view and
    send permissions there. Lookup failures count as "no" so the caller can still
    tell the sender they were refused.
    """

    def __init__(self, logger=None):
        self.log = logger or get_logger("AuthorizationGate")

    async def _resolve_member(self, guild, sender_id: int):
        member = guild.get_member(sender_id)
        if member is not None:
            return member
        return await guild.fetch_member(sender_id)

    async def can_send(self, sender_id: int | str, channel) -> bool:
        guild = getattr(channel, "guild", None)
        if guild is None:
            self.log.debug(f"auth-no-guild {kv(user=sender_id, channel=getattr(channel, 'id', None))}")
            return False
        try:
            member = await self._resolve_member(guild, int(sender_id))
        except discord.NotFound:
            self.log.debug(f"auth-not-member {kv(user=sender_id, guild=guild.id)}")
            return False
        except (discord.HTTPException, ValueError) as e:
            self.log.warning(f"auth-member-lookup-failed {kv(user=sender_id, guild=guild.id, error=repr(e))}")
            return False
        if member is None:
            return False
        perms = channel.permissions_for(member)
        allowed = bool(perms.view_channel and perms.send_messages)
        self.log.debug(
            f"auth-check {kv(user=sender_id, channel=channel.id, view=bool(perms.view_channel), send=bool(perms.send_messages), allow=allowed)}"
        )
        return allowed
