"""
Presence updater: renders one asset onto one bot.

Per call:
  1. skip if the bot has not seen READY yet
  2. status (online / dnd) + "Playing 24h | x.xx%" activity
  3. resolve the guild (cache, then REST)
  4. fetch the bot's own member record
  5. rename to "<label> $<price>" unless the nickname is already current

apply() never raises. Every failure is logged with the asset label and
absorbed so sibling bots and later cycles are unaffected.
"""

import logging
from typing import Optional

import discord

from tickers.formatting import format_change, format_price
from tickers.price_feed import AssetRecord
from tickers.registry import RegistryEntry

logger = logging.getLogger(__name__)

# Discord JSON error code for "Missing Permissions"
MISSING_PERMISSIONS = 50013


def is_permission_denied(exc: BaseException) -> bool:
    return isinstance(exc, discord.Forbidden) or getattr(exc, "code", None) == MISSING_PERMISSIONS


def nickname_for(entry: RegistryEntry, record: AssetRecord) -> str:
    return f"{entry.label} ${format_price(record.price)}"


class PresenceUpdater:
    """Applies status, activity and nickname for one registry entry per call."""

    async def _resolve_guild(self, client: discord.Client, guild_id: int) -> Optional[discord.Guild]:
        guild = client.get_guild(guild_id)
        if guild is not None:
            return guild
        try:
            return await client.fetch_guild(guild_id)
        except discord.NotFound:
            return None

    async def _rename(self, entry: RegistryEntry, guild: discord.Guild, member, nickname: str):
        try:
            await member.edit(nick=nickname)
        except Exception as e:
            logger.error("Error setting nickname for %s: %s", entry.label, e)
            if is_permission_denied(e):
                logger.error(
                    "Bot doesn't have permission to change its nickname in %s",
                    getattr(guild, "name", entry.guild_id),
                )
            return
        entry.handle.last_nickname = nickname
        logger.info("Successfully updated %s nickname to: %s", entry.label, nickname)

    async def apply(self, entry: RegistryEntry, record: AssetRecord, status: discord.Status):
        handle = entry.handle
        if not handle.ready:
            logger.info("%s client is not ready yet. Skipping update.", entry.label)
            return

        try:
            client = handle.client
            await client.change_presence(
                status=status,
                activity=discord.Game(name=format_change(record.change_pct_24h)),
            )

            guild = await self._resolve_guild(client, entry.guild_id)
            if guild is None:
                logger.error("Guild with ID %s not found for %s client", entry.guild_id, entry.label)
                return

            member = await guild.fetch_member(client.user.id)
            nickname = nickname_for(entry, record)

            if handle.last_nickname is not None and member.nick != handle.last_nickname:
                logger.info(
                    "%s nickname was changed outside the bot: %r (last set %r)",
                    entry.label, member.nick, handle.last_nickname,
                )

            if member.nick == nickname:
                handle.last_nickname = nickname
                logger.info("%s nickname is already up to date: %s", entry.label, nickname)
                return

            await self._rename(entry, guild, member, nickname)
        except Exception as e:
            logger.error("Error updating %s client: %s", entry.label, e, exc_info=True)
