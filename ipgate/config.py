from dataclasses import dataclass, field
import os
from typing import Optional, Tuple
from dotenv import load_dotenv

@dataclass
class Config:
    listen_host: str = "0.0.0.0"
    listen_port: int = 8080
    use_tls: bool = False
    tls_cert: str = "server.pem"
    tls_key: str = "server.key"
    upstream_host: str = "127.0.0.1"
    upstream_port: int = 8000
    verify_url: str = ""
    verdict_field: str = "hasip"
    deny_ttl: float = 3600.0
    sweep_interval: float = 6 * 3600.0
    connect_timeout: float = 5.0
    response_timeout: float = 5.0
    max_connections: int = 10
    ca_file: Optional[str] = None
    loopback: Tuple[str, ...] = field(default_factory=lambda: ("::1",))
    allow_max_size: Optional[int] = None
    allow_ttl: Optional[float] = None
    log_path: str = "ipgate.log"


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


def _optional(name: str, cast):
    raw = os.getenv(name, "").strip()
    return cast(raw) if raw else None


def _csv(name: str, default: str) -> Tuple[str, ...]:
    return tuple(p.strip() for p in os.getenv(name, default).split(",") if p.strip())


def load_config():
    load_dotenv(override=True)
    return Config(
        listen_host=os.getenv("GATE_LISTEN_HOST", "0.0.0.0"),
        listen_port=int(os.getenv("GATE_LISTEN_PORT", 8080)),
        use_tls=_flag("GATE_USE_TLS"),
        tls_cert=os.getenv("GATE_TLS_CERT", "server.pem"),
        tls_key=os.getenv("GATE_TLS_KEY", "server.key"),
        upstream_host=os.getenv("GATE_UPSTREAM_HOST", "127.0.0.1"),
        upstream_port=int(os.getenv("GATE_UPSTREAM_PORT", 8000)),
        verify_url=os.getenv("GATE_VERIFY_URL", ""),
        verdict_field=os.getenv("GATE_VERDICT_FIELD", "hasip"),
        deny_ttl=float(os.getenv("GATE_DENY_TTL", 3600)),
        sweep_interval=float(os.getenv("GATE_SWEEP_INTERVAL", 6 * 3600)),
        connect_timeout=float(os.getenv("GATE_CONNECT_TIMEOUT", 5)),
        response_timeout=float(os.getenv("GATE_RESPONSE_TIMEOUT", 5)),
        max_connections=int(os.getenv("GATE_MAX_CONNECTIONS", 10)),
        ca_file=_optional("GATE_CA_FILE", str),
        loopback=_csv("GATE_LOOPBACK", "::1"),
        allow_max_size=_optional("GATE_ALLOW_MAX_SIZE", int),
        allow_ttl=_optional("GATE_ALLOW_TTL", float),
        log_path=os.getenv("GATE_LOG_PATH", "ipgate.log"),
    )
