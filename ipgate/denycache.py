"""
ipgate.denycache
~~~~~~~~~~~~~~~~
Address -> expiry map for negative verdicts.  Nothing but the key and its
expiry is stored.

Expired entries are dropped lazily on read, so ``has()`` is always exact.
A background task additionally sweeps the whole map every
``sweep_interval`` seconds to keep memory bounded for addresses that are
never looked up again.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, Optional

log = logging.getLogger(__name__)

DEFAULT_TTL = 3600.0  # 1 hour
DEFAULT_SWEEP_INTERVAL = 6 * 3600.0  # 6 hours


def _positive(value: object) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and value > 0
    )


class TimedDenyCache:
    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not _positive(ttl):
            raise ValueError(f"ttl must be positive, got {ttl!r}")
        if not _positive(sweep_interval):
            raise ValueError(f"sweep_interval must be positive, got {sweep_interval!r}")
        self.ttl = float(ttl)
        self.sweep_interval = float(sweep_interval)
        self._clock = clock
        self._entries: Dict[str, float] = {}
        self._sweeper: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------ #
    # public
    # ------------------------------------------------------------------ #

    def set(self, addr: Optional[str], ttl: Optional[float] = None) -> None:
        """Deny *addr* for *ttl* seconds (default TTL when omitted).

        Bad arguments are ignored rather than raised.
        """
        if not addr:
            return
        if ttl is None:
            ttl = self.ttl
        elif not _positive(ttl):
            return
        self._entries[addr] = self._clock() + ttl

    def has(self, addr: str) -> bool:
        return self.expiry(addr) is not None

    def expiry(self, addr: str) -> Optional[float]:
        """Expiry instant of a deny still in force, else None."""
        expires = self._entries.get(addr)
        if expires is None:
            return None
        if self._clock() > expires:
            del self._entries[addr]
            return None
        return expires

    def delete(self, addr: str) -> bool:
        return self._entries.pop(addr, None) is not None

    def sweep(self) -> int:
        """Drop every expired entry; return how many were removed."""
        now = self._clock()
        stale = [addr for addr, expires in list(self._entries.items()) if now > expires]
        for addr in stale:
            self._entries.pop(addr, None)
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------ #
    # background sweep
    # ------------------------------------------------------------------ #

    @property
    def sweeping(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def start_sweeping(self) -> asyncio.Task:
        """Run ``sweep()`` every ``sweep_interval`` seconds on the running loop."""
        if not self.sweeping:
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())
        return self._sweeper

    async def stop_sweeping(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                removed = self.sweep()
            except Exception:
                log.exception("Deny cache sweep failed")
                continue
            log.debug("Deny cache sweep removed %d entries, %d left", removed, len(self))
