from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class AgentHealth:
    name: str
    healthy: bool = False
    ready: bool = False
    last_error: str | None = None
    last_cycle_at: datetime | None = None
    last_success_at: datetime | None = None
    counters: dict[str, int] = field(default_factory=dict)

    def increment(self, counter: str, amount: int = 1) -> None:
        self.counters[counter] = self.counters.get(counter, 0) + amount

    def mark_cycle(self) -> None:
        self.last_cycle_at = _now()

    def mark_success(self) -> None:
        self.healthy = True
        self.ready = True
        self.last_error = None
        self.last_success_at = _now()

    def mark_error(self, error: Exception) -> None:
        self.healthy = False
        self.last_error = f"{type(error).__name__}: {error}"
        self.increment("errors")

    def payload(self) -> dict[str, object]:
        return {
            "name": self.name,
            "healthy": self.healthy,
            "ready": self.ready,
            "last_error": self.last_error,
            "last_cycle_at": self.last_cycle_at.isoformat() if self.last_cycle_at else None,
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
            "counters": dict(self.counters),
        }
