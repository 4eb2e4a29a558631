from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class RuntimeStats:
    started_at: float = field(default_factory=time.time)
    events_handled: int = 0
    events_failed: int = 0
    actions_applied: int = 0
    actions_already_applied: int = 0
    actions_failed: int = 0
    invites_joined: int = 0
    invites_rejected: int = 0
    invites_abandoned: int = 0

    def uptime_seconds(self) -> int:
        return int(time.time() - self.started_at)

    def snapshot(self) -> dict[str, Any]:
        data = asdict(self)
        data["uptime_seconds"] = self.uptime_seconds()
        return data
