from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from Fabric.node import Tier


@dataclass(frozen=True)
class DecisionRecord:
    task_id: str
    node_id: int
    tier: Tier
    score: float  # raw action value
    value: float  # after annealed perturbation
    temperature: float
    decided_at: int  # decision ordinal
    explored: bool = False


class DecisionStore:
    """Pending decisions keyed by task id, bounded in size and age.

    Insertion order is decision order, so the oldest pending record is always
    first. A record is evicted when the store is full or once it is more than
    `max_age` decisions old; evicted records are returned to the caller so
    they can be counted and logged.
    """

    def __init__(self, max_pending: int, max_age: Optional[int] = None) -> None:
        if max_pending <= 0:
            raise ValueError("max_pending must be positive")
        self.max_pending = int(max_pending)
        self.max_age = max_age
        self._records: "OrderedDict[str, DecisionRecord]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._records

    def __iter__(self) -> Iterator[DecisionRecord]:
        return iter(list(self._records.values()))

    def put(self, record: DecisionRecord) -> List[DecisionRecord]:
        evicted: List[DecisionRecord] = []
        # A re-decided task replaces its stale record
        previous = self._records.pop(record.task_id, None)
        if previous is not None:
            evicted.append(previous)
        self._records[record.task_id] = record
        evicted.extend(self.expire(record.decided_at))
        while len(self._records) > self.max_pending:
            _, oldest = self._records.popitem(last=False)
            evicted.append(oldest)
        return evicted

    def pop(self, task_id: str) -> Optional[DecisionRecord]:
        return self._records.pop(task_id, None)

    def expire(self, now: int) -> List[DecisionRecord]:
        if self.max_age is None:
            return []
        expired: List[DecisionRecord] = []
        while self._records:
            task_id, oldest = next(iter(self._records.items()))
            if now - oldest.decided_at <= self.max_age:
                break
            del self._records[task_id]
            expired.append(oldest)
        return expired

    def oldest(self) -> Optional[Tuple[str, DecisionRecord]]:
        if not self._records:
            return None
        return next(iter(self._records.items()))
