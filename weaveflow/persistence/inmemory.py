"""In-memory implementation of the execution store."""

from __future__ import annotations

import logging
import threading
from collections import Counter, deque
from itertools import islice
from typing import Deque, Dict, List, Optional

from ..constants import DEFAULT_LIST_LIMIT, DEFAULT_STORE_CAPACITY
from ..contracts import ExecutionStats, WorkflowExecution
from .repository import ExecutionStore

logger = logging.getLogger(__name__)


def build_stats(
    by_status: Dict[str, int], total: int, duration_sum: float
) -> ExecutionStats:
    completed = by_status.get("completed", 0)
    return ExecutionStats(
        total=total,
        by_status=dict(by_status),
        success_rate=completed / total if total else 0.0,
        average_duration_ms=duration_sum / total if total else 0.0,
    )


class InMemoryExecutionStore(ExecutionStore):
    """Keep the most recent executions in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Once ``capacity`` executions are held,
    recording another evicts the oldest.
    """

    def __init__(self, capacity: int = DEFAULT_STORE_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._lock = threading.Lock()
        self._ledger: Deque[WorkflowExecution] = deque()
        self._by_id: Dict[str, WorkflowExecution] = {}
        self._by_workflow: Dict[str, Deque[str]] = {}
        self._by_status: Counter[str] = Counter()
        self._duration_sum = 0.0

    def __len__(self) -> int:
        return len(self._ledger)

    # ------------------------------------------------------------------
    def record(self, execution: WorkflowExecution) -> None:
        if not execution.is_terminal:
            raise ValueError(
                f"Execution {execution.id} is {execution.status.value}; "
                "only finished executions can be recorded"
            )
        snapshot = execution.model_copy(deep=True)
        with self._lock:
            if snapshot.id in self._by_id:
                raise ValueError(f"Execution {snapshot.id} already recorded")
            if len(self._ledger) >= self.capacity:
                self._evict_oldest()
            self._ledger.append(snapshot)
            self._by_id[snapshot.id] = snapshot
            self._by_workflow.setdefault(snapshot.workflow_id, deque()).append(
                snapshot.id
            )
            self._by_status[snapshot.status.value] += 1
            self._duration_sum += snapshot.duration_ms or 0.0

    def _evict_oldest(self) -> None:
        oldest = self._ledger.popleft()
        del self._by_id[oldest.id]
        ids = self._by_workflow[oldest.workflow_id]
        # the oldest overall is also the oldest of its workflow
        ids.popleft()
        if not ids:
            del self._by_workflow[oldest.workflow_id]
        self._by_status[oldest.status.value] -= 1
        if not self._by_status[oldest.status.value]:
            del self._by_status[oldest.status.value]
        self._duration_sum -= oldest.duration_ms or 0.0
        logger.debug(f"Evicted execution {oldest.id}")

    def get(self, execution_id: str) -> Optional[WorkflowExecution]:
        with self._lock:
            execution = self._by_id.get(execution_id)
        return execution.model_copy(deep=True) if execution else None

    def list_recent(self, limit: int = DEFAULT_LIST_LIMIT) -> List[WorkflowExecution]:
        with self._lock:
            newest = list(islice(reversed(self._ledger), max(limit, 0)))
        return [e.model_copy(deep=True) for e in newest]

    def list_by_workflow(
        self, workflow_id: str, limit: int = DEFAULT_LIST_LIMIT
    ) -> List[WorkflowExecution]:
        with self._lock:
            ids = reversed(self._by_workflow.get(workflow_id, ()))
            newest = [self._by_id[i] for i in islice(ids, max(limit, 0))]
        return [e.model_copy(deep=True) for e in newest]

    def stats(self) -> ExecutionStats:
        with self._lock:
            return build_stats(self._by_status, len(self._ledger), self._duration_sum)

    def clear(self) -> None:
        with self._lock:
            self._ledger.clear()
            self._by_id.clear()
            self._by_workflow.clear()
            self._by_status.clear()
            self._duration_sum = 0.0
