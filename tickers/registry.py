"""
Client registry: the fixed set of ticker bots.

Bundles each bot's discord.Client with its readiness flag and the asset it
renders, so the readiness gate and the scheduler's fan-out are generic over
however many entries the registry holds.

Design rules:
  - Each tracked asset gets its OWN client and handle. Handles never share
    state; a cycle's update for one entry only ever touches that entry's
    handle.
  - The readiness flag is written only by ReadinessGate.mark_ready() and
    read by the gate and the presence updater.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Tuple

import discord

from tickers.config import Settings

logger = logging.getLogger(__name__)


def create_client() -> discord.Client:
    """A gateway client with the intents needed to read and edit its own member."""
    intents = discord.Intents.none()
    intents.guilds = True
    intents.members = True
    return discord.Client(intents=intents)


@dataclass(eq=False)
class ClientHandle:
    """
    One bot connection, alive for the whole process.

    ready flips False -> True once, on the first gateway READY, and is never
    reset. last_nickname is the nickname this bot last applied or found
    already in place.
    """

    label: str                                  # e.g. "Bitcoin"
    client: discord.Client
    token: str
    ready: bool = False
    last_nickname: Optional[str] = None


@dataclass(frozen=True)
class RegistryEntry:
    handle: ClientHandle
    asset_key: str       # snapshot key, e.g. "btc"
    asset_id: str        # CoinGecko id, e.g. "bitcoin"
    label: str
    guild_id: int


class ClientRegistry:
    """
    Immutable, ordered set of registry entries.

    Usage:
        registry = build_registry(settings)
        for entry in registry:
            ...
        handles = registry.handles()
    """

    def __init__(self, entries: List[RegistryEntry]) -> None:
        self._entries: Tuple[RegistryEntry, ...] = tuple(entries)

    def __iter__(self) -> Iterator[RegistryEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> Tuple[RegistryEntry, ...]:
        return self._entries

    def handles(self) -> List[ClientHandle]:
        return [entry.handle for entry in self._entries]


def build_registry(
    settings: Settings,
    client_factory: Callable[[], discord.Client] = create_client,
) -> ClientRegistry:
    """Create one client and handle per tracked asset, in tracked-asset order."""
    entries: List[RegistryEntry] = []
    for asset in settings.assets:
        handle = ClientHandle(
            label=asset.label,
            client=client_factory(),
            token=settings.tokens[asset.key],
        )
        entries.append(
            RegistryEntry(
                handle=handle,
                asset_key=asset.key,
                asset_id=asset.coin_id,
                label=asset.label,
                guild_id=settings.guild_id,
            )
        )
        logger.debug("Registered %s bot (%s)", asset.label, asset.coin_id)
    return ClientRegistry(entries)
