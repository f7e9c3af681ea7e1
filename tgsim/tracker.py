"""
Request tracking for the simulated Bot API.

Stores every API call the bot made, with its outcome, for inspection in
tests. Calls are recorded whether they succeeded or failed.
"""
import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger("tgsim.tracker")


@dataclass
class ApiCallRecord:
    """Single tracked API call."""

    method: str
    payload: dict[str, Any]
    timestamp: int
    result: Any = None
    error: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RequestTracker:
    """Tracks all calls handled by one server, in arrival order."""

    calls: list[ApiCallRecord] = field(default_factory=list)

    def add(self, record: ApiCallRecord) -> None:
        """Add a call to the tracker."""
        self.calls.append(record)
        logger.debug("Tracked call: %s (%s)", record.method, "ok" if record.ok else "error")

    def get_calls_by_method(self, method: str) -> list[ApiCallRecord]:
        """Get all calls for a specific method."""
        return [c for c in self.calls if c.method == method]

    def get_last_call(self, method: str | None = None) -> ApiCallRecord | None:
        """Get the most recent call, optionally of one method."""
        calls = self.get_calls_by_method(method) if method else self.calls
        return calls[-1] if calls else None

    def get_failed_calls(self) -> list[ApiCallRecord]:
        return [c for c in self.calls if not c.ok]

    def count(self, method: str | None = None) -> int:
        if method is None:
            return len(self.calls)
        return len(self.get_calls_by_method(method))

    def clear(self) -> None:
        """Clear all tracked calls."""
        self.calls.clear()
        logger.debug("Tracker cleared")
