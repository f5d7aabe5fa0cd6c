"""Dependency graph resolution for workflow definitions.

Steps are grouped into *waves*: every step of a wave depends only on steps of
strictly earlier waves, so the steps inside one wave can run concurrently. A
step's wave index is one more than the highest wave index among its
dependencies, which places steps without dependencies in the first wave.
Within a wave, steps keep the order in which the definition declares them.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Sequence, Set

from .constants import RESERVED_STEP_IDS
from .contracts import ConditionConfig, Step, StepKind
from .errors import GraphError

logger = logging.getLogger(__name__)


def _index_steps(steps: Sequence[Step]) -> Dict[str, Step]:
    by_id: Dict[str, Step] = {}
    for step in steps:
        if not step.id or not step.id.strip():
            raise GraphError("Step id must be a non-empty string")
        if step.id in RESERVED_STEP_IDS:
            raise GraphError(
                f"Step id '{step.id}' is reserved for template references",
                [step.id],
            )
        if step.id in by_id:
            raise GraphError(f"Duplicate step id: {step.id}", [step.id])
        by_id[step.id] = step

    for step in steps:
        for dep in step.dependencies:
            if dep == step.id:
                raise GraphError(f"Step '{step.id}' depends on itself", [step.id])
            if dep not in by_id:
                raise GraphError(
                    f"Step '{step.id}' depends on unknown step '{dep}'", [step.id]
                )
    return by_id


def _find_cycle(by_id: Dict[str, Step], candidates: Iterable[str]) -> List[str]:
    """Return the ids forming one dependency cycle among ``candidates``."""
    candidates = list(candidates)
    done: Set[str] = set()

    for start in candidates:
        if start in done:
            continue
        path: List[str] = [start]
        on_path: Set[str] = {start}
        stack = [iter(by_id[start].dependencies)]
        while stack:
            dep = next(stack[-1], None)
            if dep is None:
                stack.pop()
                finished = path.pop()
                on_path.discard(finished)
                done.add(finished)
                continue
            if dep in on_path:
                return path[path.index(dep) :]
            if dep not in done:
                path.append(dep)
                on_path.add(dep)
                stack.append(iter(by_id[dep].dependencies))
    return candidates


def plan_waves(steps: Iterable[Step]) -> List[List[str]]:
    """Validate ``steps`` and group their ids into execution waves.

    Raises:
        GraphError: On duplicate or reserved ids, unknown dependencies or a
            dependency cycle. Nothing is executed when this is raised.
    """
    step_list = list(steps)
    by_id = _index_steps(step_list)

    remaining: Dict[str, int] = {s.id: len(set(s.dependencies)) for s in step_list}
    dependents: Dict[str, List[str]] = {s.id: [] for s in step_list}
    for step in step_list:
        for dep in set(step.dependencies):
            dependents[dep].append(step.id)

    level: Dict[str, int] = {}
    frontier = [s.id for s in step_list if remaining[s.id] == 0]
    for step_id in frontier:
        level[step_id] = 0

    # Kahn's algorithm, tracking the longest path to each node
    while frontier:
        next_frontier: List[str] = []
        for step_id in frontier:
            for child in dependents[step_id]:
                level[child] = max(level.get(child, 0), level[step_id] + 1)
                remaining[child] -= 1
                if remaining[child] == 0:
                    next_frontier.append(child)
        frontier = next_frontier

    if len(level) != len(step_list) or any(remaining.values()):
        unresolved = [s.id for s in step_list if remaining[s.id] > 0]
        cycle = _find_cycle(by_id, unresolved)
        raise GraphError(
            f"Circular dependency detected involving steps: {', '.join(cycle)}",
            cycle,
        )

    waves: List[List[str]] = [[] for _ in range(max(level.values(), default=-1) + 1)]
    for step in step_list:
        waves[level[step.id]].append(step.id)

    logger.debug(f"Planned {len(step_list)} steps into {len(waves)} waves")
    return waves


def descendants(steps: Iterable[Step], step_id: str) -> Set[str]:
    """Return every step that transitively depends on ``step_id``."""
    dependents: Dict[str, List[str]] = {}
    for step in steps:
        for dep in step.dependencies:
            dependents.setdefault(dep, []).append(step.id)

    found: Set[str] = set()
    stack = list(dependents.get(step_id, []))
    while stack:
        current = stack.pop()
        if current in found:
            continue
        found.add(current)
        stack.extend(dependents.get(current, []))
    return found


def validate_branch_targets(steps: Sequence[Step]) -> None:
    """Ensure condition branch targets exist and run after their condition.

    A target that does not depend on its condition step could be scheduled in
    the same wave or earlier, before the branch decision is known.
    """
    known = {s.id for s in steps}
    for step in steps:
        if step.kind != StepKind.CONDITION:
            continue
        try:
            config = ConditionConfig.model_validate(step.config)
        except ValueError:
            # reported by the executor registry as a configuration error
            continue
        downstream = descendants(steps, step.id)
        for target in [*config.if_true, *config.if_false]:
            if target not in known:
                raise GraphError(
                    f"Condition '{step.id}' references unknown step '{target}'",
                    [step.id],
                )
            if target not in downstream:
                raise GraphError(
                    f"Branch target '{target}' must depend on condition '{step.id}'",
                    [step.id, target],
                )
