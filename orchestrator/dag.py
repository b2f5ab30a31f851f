"""Fixed stage DAG and the scheduling rules derived from it."""

from __future__ import annotations

from typing import Dict, FrozenSet, List, Optional, Set

from core import SETTLED_STATUSES, STAGE_ORDER, TERMINAL_STATUSES, Stage, StageStatus, WorkflowRun


# Hard predecessors: must be completed or skipped before the stage may start.
PREDECESSORS: Dict[Stage, FrozenSet[Stage]] = {
    Stage.RESEARCH: frozenset(),
    Stage.ANALYSIS: frozenset({Stage.RESEARCH}),
    Stage.VALUATION: frozenset({Stage.ANALYSIS}),
    Stage.ENHANCEMENT: frozenset({Stage.ANALYSIS}),
    Stage.OPTIMIZATION: frozenset({Stage.ENHANCEMENT}),
    Stage.RENDER: frozenset({Stage.OPTIMIZATION}),
    Stage.EXPORT: frozenset({Stage.RENDER}),
}

# Soft predecessors: waited on until terminal, but their failure does not block.
SOFT_PREDECESSORS: Dict[Stage, FrozenSet[Stage]] = {
    Stage.ENHANCEMENT: frozenset({Stage.VALUATION}),
}

# Stages nothing hard-depends on; their failure never stops the run.
SOFT_STAGES: FrozenSet[Stage] = frozenset().union(*SOFT_PREDECESSORS.values())


def predecessors_settled(run: WorkflowRun, stage: Stage) -> bool:
    if any(run.status_of(dep) not in SETTLED_STATUSES for dep in PREDECESSORS[stage]):
        return False
    return all(run.status_of(dep) in TERMINAL_STATUSES for dep in SOFT_PREDECESSORS.get(stage, ()))


def next_runnable(run: WorkflowRun) -> Optional[Stage]:
    """First pending stage in DAG order whose predecessors are satisfied."""
    for stage in STAGE_ORDER:
        if run.status_of(stage) == StageStatus.PENDING and predecessors_settled(run, stage):
            return stage
    return None


def dependents(stage: Stage) -> List[Stage]:
    """Stages that transitively hard-depend on ``stage``, in DAG order."""
    found: Set[Stage] = set()
    frontier = [stage]
    while frontier:
        current = frontier.pop()
        for candidate, deps in PREDECESSORS.items():
            if current in deps and candidate not in found:
                found.add(candidate)
                frontier.append(candidate)
    return [candidate for candidate in STAGE_ORDER if candidate in found]


def reset_interrupted(run: WorkflowRun) -> List[Stage]:
    """Treat stages left ``in_progress`` by a dead process as pending again."""
    reset = []
    for stage in STAGE_ORDER:
        state = run.stages[stage]
        if state.status == StageStatus.IN_PROGRESS:
            state.status = StageStatus.PENDING
            state.started_at = None
            reset.append(stage)
    return reset
