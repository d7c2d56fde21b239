"""
ipgate.decider
~~~~~~~~~~~~~~
Non-blocking "is this address allowed?" on top of the two caches.

    allowed set  ->  True
    deny cache   ->  False
    otherwise    ->  False now, verify in the background

The first connection from an unknown address is always refused; once the
authority has answered, the client's retry is served from cache.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from typing import Dict, Iterable, Optional

from .allowset import AllowSet
from .denycache import TimedDenyCache
from .logger import GateLogger
from .verify import VerdictFieldError, VerificationError, VerificationResult, Verifier

log = logging.getLogger(__name__)

LOOPBACK = frozenset({"::1"})


class AddressState(enum.Enum):
    UNKNOWN = "unknown"
    PENDING = "pending"
    ALLOWED = "allowed"
    DENIED = "denied"


class AllowanceDecider:
    """Owns both caches and the verifier reference.

    At most one verification per address is in flight; later misses for
    the same address attach to it.
    """

    def __init__(
        self,
        verifier: Verifier,
        url_template: Optional[str] = None,
        *,
        allow_set: Optional[AllowSet] = None,
        deny_cache: Optional[TimedDenyCache] = None,
        loopback: Iterable[str] = LOOPBACK,
        verify_timeout: Optional[float] = None,
        events: Optional[GateLogger] = None,
    ) -> None:
        self.url_template = url_template
        self.verify_timeout = verify_timeout
        self.loopback = frozenset(loopback)
        self._verifier = verifier
        self._allowed = allow_set if allow_set is not None else AllowSet()
        self._denied = deny_cache if deny_cache is not None else TimedDenyCache()
        self._inflight: Dict[str, asyncio.Task] = {}
        self._events = events or GateLogger()

    # ------------------------------------------------------------------ #
    # decision path
    # ------------------------------------------------------------------ #

    def is_allowed(self, addr: str, url_template: Optional[str] = None) -> bool:
        """Answer from cache; on a miss start verification and say no.

        Never blocks and never raises.
        """
        try:
            if addr in self._allowed:
                return True
            if self._denied.has(addr):
                return False
            self._dispatch(addr, url_template or self.url_template)
        except Exception:
            log.exception("Allowance check failed for %s", addr)
        return False

    def _dispatch(self, addr: str, url_template: Optional[str]) -> Optional[asyncio.Task]:
        task = self._inflight.get(addr)
        if task is not None:
            return task
        if not url_template:
            log.error("No authority URL template configured; %s stays unverified", addr)
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.error("No running event loop; cannot verify %s", addr)
            return None

        task = loop.create_task(self._verify(addr, url_template))
        self._inflight[addr] = task
        task.add_done_callback(lambda t, a=addr: self._settle(a, t))
        return task

    def _settle(self, addr: str, task: asyncio.Task) -> None:
        if self._inflight.get(addr) is task:
            del self._inflight[addr]

    async def _verify(self, addr: str, url_template: str) -> Optional[bool]:
        start = time.monotonic()
        try:
            call = self._verifier.verify(addr, url_template)
            if self.verify_timeout is not None:
                result = await asyncio.wait_for(call, self.verify_timeout)
            else:
                result = await call
        except VerdictFieldError as exc:
            if addr not in self.loopback:
                self._events.verify_fail(addr, str(exc))
                return None
            result = VerificationResult(addr, True)
        except VerificationError as exc:
            self._events.verify_fail(addr, str(exc))
            return None
        except asyncio.TimeoutError:
            self._events.verify_fail(addr, f"no answer within {self.verify_timeout}s")
            return None
        except Exception as exc:  # noqa: BLE001
            log.exception("Verifier raised for %s", addr)
            self._events.verify_fail(addr, repr(exc))
            return None

        # loopback is trusted whatever the authority says
        verdict = result.allowed or addr in self.loopback
        self._record(addr, verdict)
        self._events.verify(addr, verdict, int((time.monotonic() - start) * 1000))
        return verdict

    def _record(self, addr: str, verdict: bool) -> None:
        if verdict:
            self._allowed.add(addr)
            self._denied.delete(addr)
        elif addr in self._allowed:
            log.info("Ignoring negative verdict for already allowed %s", addr)
        else:
            self._denied.set(addr)

    # ------------------------------------------------------------------ #
    # inspection / administration
    # ------------------------------------------------------------------ #

    def state(self, addr: str) -> AddressState:
        if addr in self._allowed:
            return AddressState.ALLOWED
        if self._denied.has(addr):
            return AddressState.DENIED
        if addr in self._inflight:
            return AddressState.PENDING
        return AddressState.UNKNOWN

    async def wait_for(self, addr: str) -> Optional[bool]:
        """Await the pending verification for *addr*, if any.

        Returns the verdict, or None when nothing is pending or the
        verification failed.
        """
        task = self._inflight.get(addr)
        if task is None:
            return None
        return await asyncio.shield(task)

    def evict(self, addr: str) -> bool:
        """Forget *addr* in both tiers.  True if anything was removed."""
        was_allowed = self._allowed.discard(addr)
        was_denied = self._denied.delete(addr)
        return was_allowed or was_denied

    @property
    def pending(self) -> int:
        return len(self._inflight)

    # ------------------------------------------------------------------ #
    # lifecycle
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        """Begin periodic deny-cache sweeps on the running loop."""
        self._denied.start_sweeping()

    async def aclose(self) -> None:
        await self._denied.stop_sweeping()
        tasks = list(self._inflight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._inflight.clear()
        close = getattr(self._verifier, "aclose", None)
        if close is not None:
            await close()
