"""
Orchestrator Module
Workflow engine, stage DAG, run checkpoints and batch summaries.
"""
from .checkpoints import checkpointed_slugs, load_run, save_run
from .dag import PREDECESSORS, SOFT_PREDECESSORS, SOFT_STAGES, dependents, next_runnable, predecessors_settled, reset_interrupted
from .engine import WorkflowEngine, stage_for_artifact, summary_path
from .summary import BatchReport, TermResult

__all__ = [
    "WorkflowEngine",
    "BatchReport",
    "TermResult",
    "PREDECESSORS",
    "SOFT_PREDECESSORS",
    "SOFT_STAGES",
    "dependents",
    "next_runnable",
    "predecessors_settled",
    "reset_interrupted",
    "load_run",
    "save_run",
    "checkpointed_slugs",
    "stage_for_artifact",
    "summary_path",
]
