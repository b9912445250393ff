"""
Celery Tasks for the migraflow workflow engine

- run_execution_task: drive an execution's node loop (fresh or resumed)
- resume_execution_task: resume a paused execution and run it here
- expire_approvals_task: periodic, fails executions whose approval timed out

Tasks are not retried automatically: the engine records every failure on
the execution row, and a re-delivered run_execution_task is harmless
because the node loop continues after the last successful node.
"""

import asyncio
import logging
from functools import lru_cache
from typing import Any, Dict

from ..core.dispatch import AsyncioDispatcher
from ..core.engine import WorkflowEngine, build_engine
from .celery_app import celery_app

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_worker_engine() -> WorkflowEngine:
    """
    Engine for this worker process. Its dispatcher runs node loops inline,
    so a task that resumes an execution also runs it.
    """
    return build_engine(dispatcher=AsyncioDispatcher())


async def _resume_and_wait(engine: WorkflowEngine, execution_id: str) -> Dict[str, Any]:
    result = await engine.resume(execution_id)
    await engine.dispatcher.join()
    return result


@celery_app.task(bind=True, name="run_execution_task")
def run_execution_task(self, execution_id: str) -> Dict[str, Any]:
    logger.info(f"Task {self.request.id}: running execution {execution_id}")

    engine = get_worker_engine()
    asyncio.run(engine.run_execution(execution_id))

    status = engine.store.get_execution_status(execution_id)
    logger.info(f"Task {self.request.id}: execution {execution_id} is {status}")
    return {"execution_id": execution_id, "status": status}


@celery_app.task(bind=True, name="resume_execution_task")
def resume_execution_task(self, execution_id: str) -> Dict[str, Any]:
    logger.info(f"Task {self.request.id}: resuming execution {execution_id}")

    engine = get_worker_engine()
    result = asyncio.run(_resume_and_wait(engine, execution_id))

    return {
        "execution_id": execution_id,
        "success": result["success"],
        "status": engine.store.get_execution_status(execution_id),
    }


@celery_app.task(name="expire_approvals_task")
def expire_approvals_task() -> Dict[str, Any]:
    engine = get_worker_engine()
    expired = engine.approvals.expire_overdue()
    if expired:
        logger.info(f"Expired {len(expired)} approval request(s)")
    return {"expired": expired}
