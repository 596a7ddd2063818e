from __future__ import annotations

from typing import Dict, FrozenSet


PLAN_STATUS_QUEUED = "queued"
PLAN_STATUS_RUNNING = "running"
PLAN_STATUS_DONE = "done"
PLAN_STATUS_ERROR = "error"

TERMINAL_STATUSES: FrozenSet[str] = frozenset({PLAN_STATUS_DONE, PLAN_STATUS_ERROR})

# Status -> statuses a row may be in when that status is written.
# A terminal status never appears as a predecessor, so terminal rows stay terminal.
_PREDECESSORS: Dict[str, FrozenSet[str]] = {
    PLAN_STATUS_RUNNING: frozenset({PLAN_STATUS_QUEUED}),
    PLAN_STATUS_DONE: frozenset({PLAN_STATUS_QUEUED, PLAN_STATUS_RUNNING}),
    PLAN_STATUS_ERROR: frozenset({PLAN_STATUS_QUEUED, PLAN_STATUS_RUNNING}),
}


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def allowed_predecessors(target_status: str) -> FrozenSet[str]:
    """
    Return the statuses from which ``target_status`` may be written.

    Rules:
    - running only from queued.
    - done / error from queued or running. Skipping running is allowed for the
      terminal write because the running write is best-effort.
    - queued is only ever written on insert, so it has no predecessors.
    """
    if target_status not in _PREDECESSORS:
        raise ValueError(f"Unknown target status: {target_status}")
    return _PREDECESSORS[target_status]
