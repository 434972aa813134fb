"""Qualification workflow package.

- WorkflowOrchestrator: run/step state machine
- RunRegistry / SqlRunRegistry: persisted runs and step results
- WorkflowTaskQueue: bounded background execution
- BatchCoordinator: multi-supplier start, status and cancel
"""

from qualification.services.workflow.run_registry import RunRegistry, SqlRunRegistry
from qualification.services.workflow.orchestrator import WorkflowOrchestrator
from qualification.services.workflow.task_queue import WorkflowTaskQueue, WorkflowJob
from qualification.services.workflow.batch import BatchCoordinator

__all__ = [
    "RunRegistry",
    "SqlRunRegistry",
    "WorkflowOrchestrator",
    "WorkflowTaskQueue",
    "WorkflowJob",
    "BatchCoordinator",
]
