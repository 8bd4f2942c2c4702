"""Readiness gate: blocks the scheduler until every bot has seen READY."""

import asyncio
import logging
from typing import Callable, Optional

from tickers.registry import ClientHandle, ClientRegistry

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 1.0


class ReadinessGate:
    """
    Tracks per-handle readiness for a ClientRegistry.

    Flags are one-way: once a handle is ready it stays ready, even across
    gateway reconnects (discord.py handles those on its own).
    """

    def __init__(self, registry: ClientRegistry):
        self.registry = registry

    def attach(self, handle: ClientHandle):
        """Install an on_ready listener on the handle's client."""
        gate = self

        async def on_ready():
            gate.mark_ready(handle)

        handle.client.event(on_ready)

    def attach_all(self):
        for handle in self.registry.handles():
            self.attach(handle)

    def mark_ready(self, handle: ClientHandle):
        if handle.ready:
            logger.debug("%s client resumed", handle.label)
            return
        handle.ready = True
        user = getattr(handle.client, "user", None)
        logger.info("%s (%s) is online", user if user is not None else "?", handle.label)

    def all_ready(self) -> bool:
        return all(handle.ready for handle in self.registry.handles())

    def pending(self):
        return [h.label for h in self.registry.handles() if not h.ready]

    async def wait(
        self,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        abort: Optional[Callable[[], None]] = None,
    ):
        """
        Poll all_ready() every poll_interval seconds until it is true.

        There is no timeout. `abort` is called on every poll and may raise
        to end the wait early.
        """
        while not self.all_ready():
            if abort is not None:
                abort()
            logger.debug("Waiting for clients: %s", ", ".join(self.pending()))
            await asyncio.sleep(poll_interval)
        logger.info("All tickers online")
