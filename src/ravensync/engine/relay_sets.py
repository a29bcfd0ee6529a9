"""Relay set resolution per role.

A [RelaySet][ravensync.engine.relay_sets.RelaySet] is the tuple of relay urls
an operation runs against: the configured relays for a role that the pool
currently reports as live. Resolution has no side effects: it never connects,
and an empty result is returned as ``None`` so read paths can degrade to a
no-op and write paths can raise
[NoWriteRelaysError][ravensync.core.exceptions.NoWriteRelaysError].
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from ravensync.utils.protocol import RelayPool

    from .configs import RelaysConfig


RelaySet = tuple[str, ...]


class RelayRole(StrEnum):
    """What a relay set is used for."""

    READ = "read"
    WRITE = "write"


class RelaySetResolver:
    """Resolve configured relays against the pool's live connections.

    Fallbacks:

    * ``READ`` with no read relays configured uses ``bootstrap``.
    * ``WRITE`` with no write relays uses ``bootstrap`` only when no read
      relays are configured either (a fresh install with no configuration).

    See Also:
        [RelaysConfig][ravensync.engine.configs.RelaysConfig]: Source of the
            per-role lists.
    """

    def __init__(self, config: RelaysConfig, pool: RelayPool) -> None:
        self._config = config
        self._pool = pool

    def configured(self, role: RelayRole) -> RelaySet:
        """Urls configured for *role* after applying the bootstrap fallback."""
        if role == RelayRole.READ:
            return tuple(self._config.read or self._config.bootstrap)
        if self._config.write:
            return tuple(self._config.write)
        if not self._config.read:
            return tuple(self._config.bootstrap)
        return ()

    def all_configured(self) -> RelaySet:
        """Union of the read and write sets, in first-seen order."""
        urls = self.configured(RelayRole.READ) + self.configured(RelayRole.WRITE)
        return tuple(dict.fromkeys(urls))

    async def resolve(self, role: RelayRole) -> RelaySet | None:
        """Return the live subset of the configured set for *role*, or ``None``."""
        wanted = self.configured(role)
        if not wanted:
            return None
        live = set(await self._pool.live_relays())
        resolved = tuple(url for url in wanted if url in live)
        return resolved or None
