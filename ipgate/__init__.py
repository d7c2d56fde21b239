"""
ipgate
~~~~~~
Non-blocking client-address allowance backed by an external HTTP
authority, with a TCP gate that uses it.
"""

from .allowset import AllowSet
from .decider import AddressState, AllowanceDecider
from .denycache import TimedDenyCache
from .verify import VerificationClient, VerificationError, VerificationResult, build_url

__all__ = [
    "AddressState",
    "AllowSet",
    "AllowanceDecider",
    "TimedDenyCache",
    "VerificationClient",
    "VerificationError",
    "VerificationResult",
    "build_url",
]
