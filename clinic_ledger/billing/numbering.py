"""Invoice number generation."""
from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InvoiceNumberGenerator:
    """Issues ``<prefix>-<YYYYMMDDHHMMSSffffff>`` numbers.

    Numbers derive from creation time and never repeat or go backwards within
    one process. Uniqueness across processes is enforced by the
    ``invoices.invoice_number`` constraint.
    """

    def __init__(self, prefix: str = "INV", clock: Callable[[], datetime] = _utcnow):
        self.prefix = prefix
        self._clock = clock
        self._last = 0

    def next(self) -> str:
        stamp = int(self._clock().strftime("%Y%m%d%H%M%S%f"))
        if stamp <= self._last:
            stamp = self._last + 1
        self._last = stamp
        return f"{self.prefix}-{stamp}"
