"""
ipgate.tls
~~~~~~~~~~
SSL contexts for both sides of the gate: the listening socket (optional)
and the outbound connection pool to the authorization authority (always
verified).
"""

from __future__ import annotations

import ssl
from pathlib import Path
from typing import Optional


def server_ssl_context(cert: str | Path, key: str | Path) -> ssl.SSLContext:
    ctx = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    ctx.load_cert_chain(str(cert), str(key))
    return ctx


def client_ssl_context(ca_file: Optional[str | Path] = None) -> ssl.SSLContext:
    """Context for talking to the authority.  *ca_file* pins a private CA."""
    ctx = ssl.create_default_context(
        ssl.Purpose.SERVER_AUTH,
        cafile=str(ca_file) if ca_file else None,
    )
    ctx.minimum_version = ssl.TLSVersion.TLSv1_2
    return ctx
