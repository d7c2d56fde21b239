"""Shared fixtures: a hand-driven clock and a scriptable verifier."""
from __future__ import annotations

import asyncio

import pytest

from ipgate.verify import VerificationError, VerificationResult

TEMPLATE = "https://authority.test/allowed?ip={{ipaddr}}"


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubVerifier:
    """Answers from a verdict table after an optional delay.

    ``hang=True`` never answers; ``fail=True`` raises VerificationError.
    """

    def __init__(self, verdicts=None, default=True, delay=0.0, hang=False, fail=False):
        self.verdicts = dict(verdicts or {})
        self.default = default
        self.delay = delay
        self.hang = hang
        self.fail = fail
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    async def verify(self, addr: str, url_template: str) -> VerificationResult:
        self.calls.append((addr, url_template))
        if self.hang:
            await asyncio.Event().wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise VerificationError("authority unreachable")
        return VerificationResult(addr, self.verdicts.get(addr, self.default))

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def verifier() -> StubVerifier:
    return StubVerifier()
