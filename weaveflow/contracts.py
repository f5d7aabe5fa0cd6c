"""Core data contracts for weaveflow workflows."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .constants import WORKFLOW_ERROR_STEP_ID


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_execution_id() -> str:
    return f"exec_{uuid.uuid4().hex}"


class CamelModel(BaseModel):
    """Base model serializing to camelCase while accepting snake_case input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StepKind(str, Enum):
    """Closed set of executor kinds a step may declare."""

    EXTERNAL_CALL = "external-call"
    GENERATIVE_TEXT = "generative-text-call"
    TRANSFORM = "transform"
    PARALLEL = "parallel"
    CONDITION = "condition"
    WORKFLOW = "workflow"


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED)


class Trigger(CamelModel):
    """How a workflow gets started. Opaque to the engine."""

    type: Literal["manual", "scheduled", "webhook"] = "manual"
    config: Dict[str, Any] = Field(default_factory=dict)


class Step(CamelModel):
    """Defines one node of a workflow graph."""

    id: str
    kind: StepKind = Field(validation_alias=AliasChoices("kind", "type"))
    name: str = ""
    config: Dict[str, Any] = Field(default_factory=dict)
    inputs: Dict[str, Any] = Field(default_factory=dict)
    outputs: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)
    continue_on_error: bool = False

    @model_validator(mode="after")
    def _default_name(self) -> "Step":
        if not self.name:
            self.name = self.id
        return self

    @property
    def output_key(self) -> Optional[str]:
        """First declared output name, if any."""
        return self.outputs[0] if self.outputs else None


class WorkflowDefinition(CamelModel):
    """A static graph of steps plus identity metadata."""

    id: str
    name: str = ""
    version: str = "1.0.0"
    description: str = ""
    triggers: List[Trigger] = Field(default_factory=lambda: [Trigger()])
    steps: List[Step] = Field(default_factory=list)

    def get_step(self, step_id: str) -> Optional[Step]:
        return next((s for s in self.steps if s.id == step_id), None)


# ----------------------------------------------------------------------
# Per-kind configuration models


class StepConfig(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )


class ExternalCallConfig(StepConfig):
    method: str = "GET"
    url: str
    headers: Dict[str, Any] = Field(default_factory=dict)
    params: Dict[str, Any] = Field(default_factory=dict)
    body: Optional[Any] = None
    timeout: Optional[float] = None
    max_attempts: Optional[int] = Field(default=None, ge=1)
    inputs_as_params: bool = False


class GenerativeTextConfig(StepConfig):
    model: Optional[str] = None
    system: Optional[str] = None
    prompt: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    response_format: Literal["text", "json"] = "text"


class TransformConfig(StepConfig):
    expression: str = Field(
        validation_alias=AliasChoices("expression", "expr", "script")
    )


class ConditionConfig(StepConfig):
    expression: str = Field(
        validation_alias=AliasChoices("expression", "expr", "condition")
    )
    if_true: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("if_true", "ifTrue", "then")
    )
    if_false: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("if_false", "ifFalse", "else"),
    )


class ParallelConfig(StepConfig):
    steps: List[Step]
    max_concurrency: Optional[int] = Field(default=None, ge=1)
    allow_partial: bool = False

    @model_validator(mode="after")
    def _check_branches(self) -> "ParallelConfig":
        if not self.steps:
            raise ValueError("parallel step requires at least one sub-step")
        seen: set[str] = set()
        for sub in self.steps:
            if sub.kind == StepKind.PARALLEL:
                raise ValueError(f"sub-step '{sub.id}' cannot itself be parallel")
            if sub.id in seen:
                raise ValueError(f"duplicate sub-step id '{sub.id}'")
            seen.add(sub.id)
        return self


class SubWorkflowConfig(StepConfig):
    workflow_id: str


STEP_CONFIG_MODELS: Dict[StepKind, Type[StepConfig]] = {
    StepKind.EXTERNAL_CALL: ExternalCallConfig,
    StepKind.GENERATIVE_TEXT: GenerativeTextConfig,
    StepKind.TRANSFORM: TransformConfig,
    StepKind.PARALLEL: ParallelConfig,
    StepKind.CONDITION: ConditionConfig,
    StepKind.WORKFLOW: SubWorkflowConfig,
}


# ----------------------------------------------------------------------
# Execution records


class WorkflowError(CamelModel):
    """One entry of an execution's error log."""

    step_id: str
    message: str
    timestamp: datetime = Field(default_factory=_utcnow)
    error_type: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class WorkflowExecution(CamelModel):
    """Complete, serializable outcome of one workflow invocation."""

    id: str = Field(default_factory=generate_execution_id)
    workflow_id: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    start_time: datetime = Field(default_factory=_utcnow)
    end_time: Optional[datetime] = None
    inputs: Dict[str, Any] = Field(default_factory=dict)
    step_results: Dict[str, Any] = Field(default_factory=dict)
    step_statuses: Dict[str, StepStatus] = Field(default_factory=dict)
    step_durations: Dict[str, float] = Field(default_factory=dict)
    errors: List[WorkflowError] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def duration_ms(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds() * 1000

    def set_step_status(self, step_id: str, status: StepStatus) -> None:
        self.step_statuses[step_id] = status

    def add_error(
        self,
        step_id: str,
        message: str,
        error_type: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> WorkflowError:
        entry = WorkflowError(
            step_id=step_id,
            message=message,
            error_type=error_type,
            details=details or {},
        )
        self.errors.append(entry)
        return entry

    def fail_before_start(self, exc: Exception) -> None:
        """Mark the run failed without dispatching anything."""
        self.add_error(
            WORKFLOW_ERROR_STEP_ID,
            str(exc),
            error_type=type(exc).__name__,
            details=dict(getattr(exc, "details", {}) or {}),
        )
        for step_id in self.step_statuses:
            self.step_statuses[step_id] = StepStatus.SKIPPED
        self.status = ExecutionStatus.FAILED
        self.end_time = _utcnow()

    def to_dict(self) -> Dict[str, Any]:
        """JSON-compatible dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, data: str) -> "WorkflowExecution":
        return cls.model_validate_json(data)


class ExecutionStats(CamelModel):
    """Aggregate counters reported by an execution store."""

    total: int = 0
    by_status: Dict[str, int] = Field(default_factory=dict)
    success_rate: float = 0.0
    average_duration_ms: float = 0.0
