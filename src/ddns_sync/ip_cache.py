"""Last successfully applied address, one cache per address family."""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional

from ddns_sync.domains import AddressFamily

logger = logging.getLogger(__name__)

DEFAULT_FORCE_AFTER = 5


class IPCache:
    """Remembers the address the provider last confirmed for one family.

    The cache starts empty and is written only through advance(), which the
    reconciler calls once at the end of a successful pass. After force_after
    consecutive cycles with an unchanged address the next pass is forced, so
    records edited by hand on the provider side get corrected eventually.
    A force_after of 0 disables forcing.
    """

    def __init__(self, family: AddressFamily, force_after: int = DEFAULT_FORCE_AFTER):
        self.family = family
        self.force_after = max(0, force_after)
        self._address = ""
        self._updated_at: Optional[float] = None
        self._skipped = 0
        self._lock = threading.Lock()

    @property
    def address(self) -> str:
        return self._address

    @property
    def updated_at(self) -> Optional[float]:
        return self._updated_at

    def is_current(self, ip: str) -> bool:
        """Return True if a pass for ip can be skipped.

        Every True answer counts as one skipped cycle.
        """
        with self._lock:
            if not ip or not self._address or ip != self._address:
                return False
            if self.force_after and self._skipped >= self.force_after:
                logger.debug(
                    f"{self.family.label} address {ip} unchanged for {self._skipped} cycles, forcing check"
                )
                return False
            self._skipped += 1
            return True

    def advance(self, ip: str) -> None:
        with self._lock:
            self._address = ip
            self._updated_at = time.time()
            self._skipped = 0

    def reset(self) -> None:
        """Forget the cached address, e.g. after the provider configuration changed."""
        with self._lock:
            self._address = ""
            self._updated_at = None
            self._skipped = 0
