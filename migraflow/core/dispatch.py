"""
Background dispatch of the node loop.

WorkflowEngine.execute() and resume() return immediately; the node loop
for the execution runs elsewhere:
- AsyncioDispatcher: an asyncio task in the current event loop
- CeleryDispatcher: a Celery task on a worker process
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Set

if TYPE_CHECKING:
    from .engine import WorkflowEngine

logger = logging.getLogger(__name__)


class AsyncioDispatcher:
    """
    Runs executions as tasks in the running event loop.

    Strong references to the tasks are kept until they finish so they are
    not garbage collected mid-run.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def dispatch(self, engine: "WorkflowEngine", execution_id: str) -> None:
        task = asyncio.get_running_loop().create_task(
            engine.run_execution(execution_id),
            name=f"workflow-execution-{execution_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def join(self) -> None:
        """Wait until every dispatched execution (including ones dispatched meanwhile) is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))


class CeleryDispatcher:
    """Enqueues the node loop on the Celery ``workflows`` queue."""

    def dispatch(self, engine: "WorkflowEngine", execution_id: str) -> None:
        from ..workers.tasks import run_execution_task

        result = run_execution_task.delay(execution_id)
        logger.info(f"Execution {execution_id} queued as Celery task {result.id}")
