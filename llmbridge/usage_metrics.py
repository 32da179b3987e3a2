"""In-memory counters for chat traffic through the gateway."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Iterable, Optional


class RequestTracker:
    """Track one chat request from admission to the end of its response."""

    def __init__(self, counters: "UsageCounters") -> None:
        self._counters = counters
        self._finished = False

    def finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        self._counters.finish_request()

    def reject(self, status_code: int) -> None:
        """Close the request as refused before any backend was contacted."""
        if self._finished:
            return
        self._finished = True
        self._counters.reject_request(status_code)

    @property
    def finished(self) -> bool:
        return self._finished


@dataclass
class UsageCounters:
    """Thread-safe request counters."""

    _lock: Lock = field(default_factory=Lock, repr=False)
    _started_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    _received: int = 0
    _served: int = 0
    _ongoing: int = 0
    _rejected: Counter = field(default_factory=Counter)
    _strategies: Counter = field(default_factory=Counter)

    def start_request(self) -> RequestTracker:
        with self._lock:
            self._received += 1
            self._ongoing += 1
        return RequestTracker(self)

    def finish_request(self) -> None:
        with self._lock:
            self._served += 1
            self._ongoing = max(self._ongoing - 1, 0)

    def reject_request(self, status_code: int) -> None:
        with self._lock:
            self._rejected[str(status_code)] += 1
            self._ongoing = max(self._ongoing - 1, 0)

    def record_strategy(self, strategy: str) -> None:
        with self._lock:
            self._strategies[strategy] += 1

    def reset(self) -> None:
        with self._lock:
            self._received = 0
            self._served = 0
            self._ongoing = 0
            self._rejected.clear()
            self._strategies.clear()

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "started_at": self._started_at,
                "received": self._received,
                "served": self._served,
                "ongoing": self._ongoing,
                "rejected": dict(self._rejected),
                "strategies": dict(self._strategies),
            }


USAGE_COUNTERS = UsageCounters()


def build_usage_snapshot(enabled_providers: Optional[Iterable[str]] = None) -> dict[str, Any]:
    """Build the usage payload: realtime counters plus the enabled providers."""
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "realtime": USAGE_COUNTERS.snapshot(),
        "providers": sorted(enabled_providers or []),
    }
