"""Store abstraction for finished workflow executions."""

from __future__ import annotations

from typing import List, Optional, Protocol

from ..contracts import ExecutionStats, WorkflowExecution


class ExecutionStore(Protocol):
    """Protocol for execution ledger backends.

    Implementations are safe to call from several threads and hand out copies
    that callers may mutate freely.
    """

    def record(self, execution: WorkflowExecution) -> None:
        """Persist a terminal execution, evicting the oldest when full."""

    def get(self, execution_id: str) -> Optional[WorkflowExecution]:
        """Retrieve an execution by id."""

    def list_recent(self, limit: int = ...) -> List[WorkflowExecution]:
        """Return the most recent executions, newest first."""

    def list_by_workflow(
        self, workflow_id: str, limit: int = ...
    ) -> List[WorkflowExecution]:
        """Return the most recent executions of one workflow, newest first."""

    def stats(self) -> ExecutionStats:
        """Aggregate counters over the retained executions."""

    def clear(self) -> None:
        """Drop every retained execution."""
