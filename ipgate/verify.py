"""
ipgate.verify
~~~~~~~~~~~~~
Client for the external authorization authority.

The authority is addressed through a URL template such as
``https://api.example.com/allowed?ip={{ipaddr}}`` and answers with a JSON
object carrying one boolean, e.g. ``{"hasip": true}``.
"""

from __future__ import annotations

import json
import ssl
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from .tls import client_ssl_context

PLACEHOLDER = "{{ipaddr}}"


class VerificationError(Exception):
    pass


class VerdictFieldError(VerificationError):
    """The reply is a JSON object but carries no boolean verdict."""


@dataclass(frozen=True, slots=True)
class VerificationResult:
    address: str
    allowed: bool


class Verifier(Protocol):
    async def verify(self, addr: str, url_template: str) -> VerificationResult: ...


def build_url(template: str, addr: str) -> str:
    """Substitute *addr* for the first placeholder, verbatim (no escaping)."""
    return template.replace(PLACEHOLDER, addr, 1)


class VerificationClient:
    """Pooled HTTPS client bounded by a connect and a response timeout.

    ``transport`` exists for tests (``httpx.MockTransport``).
    """

    def __init__(
        self,
        *,
        connect_timeout: float = 5.0,
        response_timeout: float = 5.0,
        max_connections: int = 10,
        verdict_field: str = "hasip",
        ssl_context: Optional[ssl.SSLContext] = None,
        require_tls: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.verdict_field = verdict_field
        self.require_tls = require_tls
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(response_timeout, connect=connect_timeout),
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max_connections,
            ),
            verify=ssl_context or client_ssl_context(),
            transport=transport,
        )

    async def __aenter__(self) -> "VerificationClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def verify(self, addr: str, url_template: str) -> VerificationResult:
        try:
            url = httpx.URL(build_url(url_template, addr))
        except httpx.InvalidURL as e:
            raise VerificationError(f"Bad authority URL for {addr}: {e}") from e
        if self.require_tls and url.scheme != "https":
            raise VerificationError(f"Refusing non-TLS authority URL {url}")

        try:
            resp = await self._client.get(url)
            resp.raise_for_status()
        except httpx.TimeoutException as e:
            raise VerificationError(f"Authority timed out for {addr}") from e
        except httpx.HTTPStatusError as e:
            raise VerificationError(
                f"Authority answered {e.response.status_code} for {addr}"
            ) from e
        except httpx.HTTPError as e:
            raise VerificationError(f"Authority unreachable for {addr}: {e}") from e

        return VerificationResult(address=addr, allowed=self._verdict(resp.content))

    def _verdict(self, body: bytes) -> bool:
        try:
            doc = json.loads(body)
        except ValueError as e:
            raise VerificationError("Authority response is not JSON") from e
        if not isinstance(doc, dict):
            raise VerificationError("Authority response is not a JSON object")
        verdict = doc.get(self.verdict_field)
        if not isinstance(verdict, bool):
            raise VerdictFieldError(
                f"Authority response lacks boolean {self.verdict_field!r}"
            )
        return verdict
