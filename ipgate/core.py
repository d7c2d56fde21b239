"""
ipgate.core
~~~~~~~~~~~
Non-blocking TCP gate: every inbound connection is checked against the
allowance decider and either dropped on the spot or piped to the upstream
service.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from .allowset import AllowSet
from .config import Config
from .decider import AllowanceDecider
from .denycache import TimedDenyCache
from .logger import GateLogger, configure_logging
from .tls import client_ssl_context, server_ssl_context
from .verify import VerificationClient

BUFFER = 65_536

log = logging.getLogger(__name__)


def run_gate(config: Config) -> None:
    configure_logging(config.log_path)
    gate = GateServer(config)
    try:
        asyncio.run(gate.serve_forever())
    except KeyboardInterrupt:
        print("\n▸ Gate shut down.")


def build_decider(cfg: Config, events: Optional[GateLogger] = None) -> AllowanceDecider:
    verifier = VerificationClient(
        connect_timeout=cfg.connect_timeout,
        response_timeout=cfg.response_timeout,
        max_connections=cfg.max_connections,
        verdict_field=cfg.verdict_field,
        ssl_context=client_ssl_context(cfg.ca_file),
    )
    return AllowanceDecider(
        verifier,
        cfg.verify_url,
        allow_set=AllowSet(max_size=cfg.allow_max_size, ttl=cfg.allow_ttl),
        deny_cache=TimedDenyCache(ttl=cfg.deny_ttl, sweep_interval=cfg.sweep_interval),
        loopback=cfg.loopback,
        events=events,
    )


class GateServer:
    def __init__(self, cfg: Config, decider: Optional[AllowanceDecider] = None) -> None:
        self.cfg = cfg
        self.logger = GateLogger()
        self.decider = decider or build_decider(cfg, self.logger)
        self._server: Optional[asyncio.AbstractServer] = None
        self._bound_port = 0

    @property
    def address(self) -> tuple[str, int]:
        return (self.cfg.listen_host, self._bound_port)

    async def start(self) -> None:
        ssl_ctx = (
            server_ssl_context(self.cfg.tls_cert, self.cfg.tls_key)
            if self.cfg.use_tls
            else None
        )
        self._server = await asyncio.start_server(
            self._handle_client,
            host=self.cfg.listen_host,
            port=self.cfg.listen_port,
            ssl=ssl_ctx,
        )
        socks = self._server.sockets
        if socks:
            self._bound_port = socks[0].getsockname()[1]
        self.decider.start()

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        await self.decider.aclose()

    async def serve_forever(self) -> None:
        await self.start()
        server = self._server
        bind_str = ", ".join(str(s.getsockname()) for s in server.sockets)
        print(f"▸ Gate listening on {bind_str}  (TLS={self.cfg.use_tls})")
        try:
            async with server:
                await server.serve_forever()
        finally:
            await self.stop()

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        start_ts = time.time()
        peer = writer.get_extra_info("peername")
        peer_ip = peer[0] if peer else "-"
        upstream = f"{self.cfg.upstream_host}:{self.cfg.upstream_port}"

        try:
            if not self.decider.is_allowed(peer_ip):
                self.logger.reject(peer_ip)
                return

            try:
                remote_reader, remote_writer = await asyncio.open_connection(
                    self.cfg.upstream_host, self.cfg.upstream_port
                )
            except OSError as e:
                log.warning("Upstream %s unreachable for %s: %s", upstream, peer_ip, e)
                return

            self.logger.start(peer_ip, upstream)
            sent, received = await _pipe_bidirectional(
                reader, writer, remote_reader, remote_writer
            )
            self.logger.end(
                peer_ip,
                upstream,
                sent + received,
                int((time.time() - start_ts) * 1000),
            )
        except Exception:
            log.exception("Error handling connection from %s", peer_ip)
        finally:
            await _close(writer)


async def _close(writer: asyncio.StreamWriter) -> None:
    try:
        writer.close()
        await writer.wait_closed()
    except (ConnectionError, OSError):
        pass


async def _pipe_stream(src: asyncio.StreamReader, dst: asyncio.StreamWriter) -> int:
    total = 0
    try:
        while not src.at_eof():
            chunk = await src.read(BUFFER)
            if not chunk:
                break
            dst.write(chunk)
            await dst.drain()
            total += len(chunk)
    except ConnectionError:
        pass
    finally:
        await _close(dst)
    return total


async def _pipe_bidirectional(r1, w1, r2, w2) -> tuple[int, int]:
    sent, received = await asyncio.gather(_pipe_stream(r1, w2), _pipe_stream(r2, w1))
    return sent, received
