from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional
import json


@dataclass
class TaskLifecycleEvent:
    step: int
    event: str
    detail: Dict[str, object] = field(default_factory=dict)


@dataclass
class DecisionLifecycleLogger:
    """Per-task lifecycle logger: decide, no placement, complete/fail, expire.

    Events are stamped with the scheduler's decision ordinal rather than wall
    time so that seeded runs produce identical logs.
    """

    events: Dict[str, List[TaskLifecycleEvent]] = field(default_factory=dict)
    max_tasks: Optional[int] = None

    def _log(self, task_id: str, step: int, event: str, **detail) -> None:
        if task_id not in self.events and self.max_tasks is not None and len(self.events) >= self.max_tasks:
            # Drop the oldest task's history
            self.events.pop(next(iter(self.events)))
        self.events.setdefault(task_id, []).append(
            TaskLifecycleEvent(step=step, event=event, detail=dict(detail))
        )

    def decide(self, task_id: str, step: int, node_id: int, tier: str, temperature: float, explored: bool) -> None:
        self._log(task_id, step, "decide", node=node_id, tier=tier, temperature=temperature, explored=explored)

    def no_placement(self, task_id: str, step: int, candidates: int) -> None:
        self._log(task_id, step, "no_placement", candidates=candidates)

    def complete(self, task_id: str, step: int, reward: float) -> None:
        self._log(task_id, step, "complete", reward=reward)

    def fail(self, task_id: str, step: int, reward: float, reason: Optional[str] = None) -> None:
        self._log(task_id, step, "fail", reward=reward, reason=(reason or ""))

    def expire(self, task_id: str, step: int) -> None:
        self._log(task_id, step, "expire")

    def unknown(self, task_id: str, step: int) -> None:
        self._log(task_id, step, "unknown_completion")

    def history(self, task_id: str) -> List[str]:
        return [ev.event for ev in self.events.get(task_id, [])]

    def to_json(self) -> str:
        def _conv(ev: TaskLifecycleEvent):
            return {"step": ev.step, "event": ev.event, **(ev.detail or {})}
        obj = {tid: [_conv(ev) for ev in evs] for tid, evs in self.events.items()}
        return json.dumps(obj, indent=2)
