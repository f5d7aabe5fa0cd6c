from datetime import timedelta

import pytest

from weaveflow.contracts import ExecutionStatus, WorkflowExecution
from weaveflow.persistence import (
    InMemoryExecutionStore,
    SQLiteExecutionStore,
    get_store,
)
from weaveflow.config import WeaveflowConfig


def _finished(workflow_id="wf", status=ExecutionStatus.COMPLETED, duration_ms=100):
    execution = WorkflowExecution(workflow_id=workflow_id, status=status)
    execution.end_time = execution.start_time + timedelta(milliseconds=duration_ms)
    return execution


@pytest.fixture(params=["memory", "sqlite"])
def store_factory(request, tmp_path):
    def build(capacity=100):
        if request.param == "memory":
            return InMemoryExecutionStore(capacity)
        return SQLiteExecutionStore(tmp_path / "executions.db", capacity)

    return build


def test_capacity_evicts_oldest(store_factory):
    store = store_factory(capacity=3)
    executions = [_finished() for _ in range(4)]
    for execution in executions:
        store.record(execution)

    assert store.get(executions[0].id) is None
    assert [e.id for e in store.list_recent()] == [e.id for e in reversed(executions[1:])]
    assert store.stats().total == 3


def test_stats_track_status_and_duration(store_factory):
    store = store_factory()
    store.record(_finished(duration_ms=100))
    store.record(_finished(duration_ms=300))
    store.record(_finished(status=ExecutionStatus.FAILED, duration_ms=200))
    store.record(_finished(status=ExecutionStatus.FAILED, duration_ms=400))

    stats = store.stats()
    assert stats.total == 4
    assert stats.by_status == {"completed": 2, "failed": 2}
    assert stats.success_rate == pytest.approx(0.5)
    assert stats.average_duration_ms == pytest.approx(250)


def test_stats_follow_evictions(store_factory):
    store = store_factory(capacity=2)
    store.record(_finished(status=ExecutionStatus.FAILED))
    store.record(_finished())
    store.record(_finished())

    stats = store.stats()
    assert stats.by_status == {"completed": 2}
    assert stats.success_rate == 1.0


def test_list_by_workflow_newest_first(store_factory):
    store = store_factory()
    a1 = _finished("a")
    b1 = _finished("b")
    a2 = _finished("a")
    for execution in (a1, b1, a2):
        store.record(execution)

    assert [e.id for e in store.list_by_workflow("a")] == [a2.id, a1.id]
    assert [e.id for e in store.list_by_workflow("a", limit=1)] == [a2.id]
    assert store.list_by_workflow("missing") == []


def test_returned_records_are_copies(store_factory):
    store = store_factory()
    execution = _finished()
    execution.step_results["x"] = {"v": 1}
    store.record(execution)

    execution.step_results["x"]["v"] = 2
    fetched = store.get(execution.id)
    fetched.step_results["x"]["v"] = 3

    assert store.get(execution.id).step_results == {"x": {"v": 1}}


def test_only_finished_executions_are_accepted(store_factory):
    store = store_factory()
    with pytest.raises(ValueError, match="only finished"):
        store.record(WorkflowExecution(workflow_id="wf"))


def test_duplicate_ids_are_rejected(store_factory):
    store = store_factory()
    execution = _finished()
    store.record(execution)
    with pytest.raises(ValueError, match="already recorded"):
        store.record(execution)
    assert store.stats().total == 1


def test_clear(store_factory):
    store = store_factory()
    store.record(_finished())
    store.clear()
    assert store.list_recent() == []
    assert store.stats().total == 0


def test_sqlite_store_survives_reopen(tmp_path):
    path = tmp_path / "ledger.db"
    execution = _finished(status=ExecutionStatus.FAILED)
    execution.add_error("a", "boom", error_type="ExecutorError")
    SQLiteExecutionStore(path).record(execution)

    reopened = SQLiteExecutionStore(path)
    fetched = reopened.get(execution.id)
    assert fetched.status == ExecutionStatus.FAILED
    assert fetched.errors[0].message == "boom"
    assert reopened.stats().by_status == {"failed": 1}


def test_get_store_selects_backend(tmp_path):
    config = WeaveflowConfig()
    assert isinstance(get_store(config=config), InMemoryExecutionStore)

    store = get_store(f"sqlite://{tmp_path / 'x.db'}", config=config)
    assert isinstance(store, SQLiteExecutionStore)

    with pytest.raises(ValueError, match="Unsupported"):
        get_store("postgres://localhost/db", config=config)


def test_memory_store_copies_records_outside_its_lock(monkeypatch):
    store = InMemoryExecutionStore()
    execution = _finished()
    store.record(execution)

    held = []
    original = WorkflowExecution.model_copy

    def checked_copy(self, *args, **kwargs):
        held.append(store._lock.locked())
        return original(self, *args, **kwargs)

    monkeypatch.setattr(WorkflowExecution, "model_copy", checked_copy)

    assert store.get(execution.id).id == execution.id
    assert [e.id for e in store.list_recent()] == [execution.id]
    assert [e.id for e in store.list_by_workflow("wf")] == [execution.id]
    assert held == [False, False, False]
