"""Filters for redundant scans and superseded lookups."""

from __future__ import annotations

import time

import structlog

logger = structlog.get_logger()


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class ScanDebouncer:
    """Suppresses repeat decodes of the same code within a short window.

    A still-visible tag under a running decoder fires the same payload many
    times per second; only the first decode inside the window is processed.
    """

    def __init__(self, threshold_ms: int = 900):
        self.threshold_ms = threshold_ms
        self._last_code: str | None = None
        self._last_ts: float | None = None

    def accept(self, code: str, now_ms: float | None = None) -> bool:
        """Decide whether a decoded code should be processed.

        Args:
            code: Normalized product code
            now_ms: Decode time in milliseconds. Defaults to a monotonic clock.

        Returns:
            True to process the event, False to suppress it
        """
        now = _monotonic_ms() if now_ms is None else now_ms

        if code == self._last_code and self._last_ts is not None:
            elapsed = now - self._last_ts
            if elapsed < self.threshold_ms:
                logger.debug(
                    "scan_debounced",
                    product_code=code,
                    elapsed_ms=elapsed,
                    threshold_ms=self.threshold_ms,
                )
                return False

        self._last_code = code
        self._last_ts = now
        return True

    def reset(self) -> None:
        self._last_code = None
        self._last_ts = None


class RequestGenerationGuard:
    """Staleness filter for overlapping asynchronous lookups.

    Each lookup captures a generation on start and checks it after every
    await. Older lookups are not cancelled; their results are dropped.
    """

    def __init__(self) -> None:
        self._generation = 0

    @property
    def current(self) -> int:
        return self._generation

    def begin(self) -> int:
        """Start a new lookup, superseding any in flight."""
        self._generation += 1
        return self._generation

    def is_current(self, generation: int) -> bool:
        return generation == self._generation
