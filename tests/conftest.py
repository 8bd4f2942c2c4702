"""Shared fakes for the discord client surface and the price feed."""

import asyncio
from types import SimpleNamespace
from typing import Dict, List, Optional
from unittest import mock

import discord
import pytest

from tickers.config import TRACKED_ASSETS
from tickers.price_feed import AssetRecord
from tickers.registry import ClientHandle, ClientRegistry, RegistryEntry

GUILD_ID = 1049783263956324462


def http_error(cls, status: int, code: int, message: str = "error"):
    """Build a real discord.HTTPException subclass without a network response."""
    response = mock.Mock(status=status, reason=message)
    return cls(response, {"code": code, "message": message})


class FakeMember:
    def __init__(self, nick: Optional[str] = None, edit_error: Optional[Exception] = None):
        self.nick = nick
        self.edit_error = edit_error
        self.edits: List[Optional[str]] = []

    async def edit(self, *, nick=None):
        self.edits.append(nick)
        if self.edit_error is not None:
            raise self.edit_error
        self.nick = nick


class FakeGuild:
    def __init__(self, guild_id: int, member: FakeMember, name: str = "Crypto"):
        self.id = guild_id
        self.name = name
        self.member = member
        self.member_error: Optional[Exception] = None

    async def fetch_member(self, user_id):
        await asyncio.sleep(0)
        if self.member_error is not None:
            raise self.member_error
        return self.member


class FakeClient:
    """The subset of discord.Client used by the ticker bots."""

    _next_id = 1

    def __init__(self, name: str = "bot", cached: bool = False):
        self.user = SimpleNamespace(id=FakeClient._next_id, name=name)
        FakeClient._next_id += 1
        self.member = FakeMember()
        self.guild = FakeGuild(GUILD_ID, self.member)
        self.cached = cached
        self.presences: List[dict] = []
        self.login_error: Optional[Exception] = None
        self.connect_error: Optional[Exception] = None
        self.ready_on_connect = True
        self.logged_in_with: Optional[str] = None
        self.closed = False
        self._closed = asyncio.Event()

    def event(self, coro):
        setattr(self, coro.__name__, coro)
        return coro

    async def login(self, token):
        await asyncio.sleep(0)
        if self.login_error is not None:
            raise self.login_error
        self.logged_in_with = token

    async def connect(self, *, reconnect=True):
        await asyncio.sleep(0)
        if self.connect_error is not None:
            raise self.connect_error
        if self.ready_on_connect and hasattr(self, "on_ready"):
            await self.on_ready()
        await self._closed.wait()

    async def close(self):
        self.closed = True
        self._closed.set()

    async def change_presence(self, *, status=None, activity=None):
        await asyncio.sleep(0)
        self.presences.append({"status": status, "activity": activity})

    def get_guild(self, guild_id):
        if self.cached and guild_id == self.guild.id:
            return self.guild
        return None

    async def fetch_guild(self, guild_id):
        await asyncio.sleep(0)
        if guild_id != self.guild.id:
            raise http_error(discord.NotFound, 404, 10004, "Unknown Guild")
        return self.guild


class FakeFeed:
    """Returns queued snapshots; None entries model failed fetches."""

    def __init__(self, results):
        self.results = list(results)
        self.calls = 0
        self.closed = False

    async def fetch(self):
        self.calls += 1
        await asyncio.sleep(0)
        if not self.results:
            return None
        if len(self.results) == 1:
            return self.results[0]
        return self.results.pop(0)

    async def close(self):
        self.closed = True


def make_snapshot(atom=(9.50, 1.2), btc=(65000.0, -0.5), eth=(3200.0, 0.3)) -> Dict[str, AssetRecord]:
    values = {"atom": atom, "btc": btc, "eth": eth}
    return {
        asset.key: AssetRecord(
            asset_key=asset.key,
            asset_id=asset.coin_id,
            label=asset.label,
            price=values[asset.key][0],
            change_pct_24h=values[asset.key][1],
        )
        for asset in TRACKED_ASSETS
    }


def make_registry(ready: bool = True, guild_id: int = GUILD_ID) -> ClientRegistry:
    entries = []
    for asset in TRACKED_ASSETS:
        handle = ClientHandle(
            label=asset.label,
            client=FakeClient(name=f"{asset.label}Bot"),
            token=f"token-{asset.key}",
            ready=ready,
        )
        entries.append(
            RegistryEntry(
                handle=handle,
                asset_key=asset.key,
                asset_id=asset.coin_id,
                label=asset.label,
                guild_id=guild_id,
            )
        )
    return ClientRegistry(entries)


@pytest.fixture
def registry():
    return make_registry()


@pytest.fixture
def snapshot():
    return make_snapshot()
