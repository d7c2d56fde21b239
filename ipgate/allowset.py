"""
ipgate.allowset
~~~~~~~~~~~~~~~
Addresses the authority has confirmed.  Membership is permanent unless a
bound is configured:

max_size  -- evict the least recently seen address once full
ttl       -- forget an address *ttl* seconds after it was last added

Both default to None, i.e. never evict.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Callable, Optional


class AllowSet:
    def __init__(
        self,
        max_size: Optional[int] = None,
        ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock
        # addr -> time of last add; ordered oldest-seen first
        self._members: "OrderedDict[str, float]" = OrderedDict()

    # ------------------------------------------------------------------ #
    # public
    # ------------------------------------------------------------------ #

    def contains(self, addr: str) -> bool:
        added = self._members.get(addr)
        if added is None:
            return False
        if self.ttl is not None and self._clock() - added > self.ttl:
            del self._members[addr]
            return False
        if self.max_size is not None:
            self._members.move_to_end(addr)
        return True

    __contains__ = contains

    def add(self, addr: str) -> None:
        self._members[addr] = self._clock()
        self._members.move_to_end(addr)
        if self.max_size is not None:
            while len(self._members) > self.max_size:
                self._members.popitem(last=False)

    def discard(self, addr: str) -> bool:
        """Administrative removal.  True if *addr* was a member."""
        return self._members.pop(addr, None) is not None

    def __len__(self) -> int:
        return len(self._members)
