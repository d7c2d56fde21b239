"""
ipgate.logger
~~~~~~~~~~~~~
JSON-lines file log with daily rotation, plus a one-line-per-event
console view.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

_ISO = "%Y-%m-%dT%H:%M:%SZ"
ROOT = "ipgate"

def _now() -> str:  # RFC-3339 without microseconds
    return datetime.now(tz=timezone.utc).strftime(_ISO)


class _PlainFormatter(logging.Formatter):
    """ e.g. 2025-06-19T15:07:02Z verify 10.0.0.7 allowed 112 ms """

    def format(self, record):  # type: ignore[override]
        if not isinstance(record.msg, dict):
            return super().format(record)
        d: Dict[str, Any] = record.msg

        parts = [d.get("ts", _now()), d.get("event", "-"), d.get("ip", "-")]
        event = d.get("event")
        if event == "verify":
            parts.extend(["allowed" if d.get("allowed") else "denied", f'{d.get("ms", 0)} ms'])
        elif event == "verify_fail":
            parts.append(d.get("reason", ""))
        elif event == "end":
            parts.extend([d.get("upstream", "-"), f'{d.get("bytes", 0):,}B', f'{d.get("ms", 0)} ms'])
        elif event == "start":
            parts.append(d.get("upstream", "-"))
        return " ".join(parts)


class _JSONFormatter(logging.Formatter):
    def format(self, record):  # type: ignore[override]
        if isinstance(record.msg, dict):
            doc = record.msg
        else:
            doc = {
                "event": "log",
                "ts": _now(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
            }
            if record.exc_info:
                doc["exc"] = self.formatException(record.exc_info)
        return json.dumps(doc, separators=(",", ":"), default=str)


def configure_logging(basename: Optional[str | Path], console: bool = True) -> logging.Logger:
    """Attach handlers to the ``ipgate`` logger.  Safe to call twice."""
    root = logging.getLogger(ROOT)
    root.setLevel(logging.INFO)
    root.propagate = False  # don't spam the root logger

    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()

    if basename:
        basename = Path(basename).with_suffix("")  # ipgate
        jsonl_file = basename.with_suffix(".jsonl")

        # json lines
        h = logging.handlers.TimedRotatingFileHandler(
            jsonl_file, when="midnight", backupCount=7, encoding="utf-8"
        )
        h.setFormatter(_JSONFormatter())
        root.addHandler(h)

    if console:
        s = logging.StreamHandler()
        s.setFormatter(_PlainFormatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        root.addHandler(s)

    return root


class GateLogger:
    """Structured events.  Handlers come from ``configure_logging``."""

    def __init__(self, name: str = ROOT):
        self.log = logging.getLogger(name)

    def verify(self, ip: str, allowed: bool, duration_ms: int):
        self.log.info(
            {
                "event": "verify",
                "ts": _now(),
                "ip": ip,
                "allowed": allowed,
                "ms": duration_ms,
            }
        )

    def verify_fail(self, ip: str, reason: str):
        self.log.warning(
            {
                "event": "verify_fail",
                "ts": _now(),
                "ip": ip,
                "reason": reason,
            }
        )

    def reject(self, ip: str):
        self.log.info({"event": "reject", "ts": _now(), "ip": ip})

    def start(self, ip: str, upstream: str):
        self.log.info(
            {
                "event": "start",
                "ts": _now(),
                "ip": ip,
                "upstream": upstream,
            }
        )

    def end(self, ip: str, upstream: str, total_bytes: int, duration_ms: int):
        self.log.info(
            {
                "event": "end",
                "ts": _now(),
                "ip": ip,
                "upstream": upstream,
                "bytes": total_bytes,
                "ms": duration_ms,
            }
        )
