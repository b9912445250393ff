"""
Delay Executor: waits ``duration`` seconds, then succeeds.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..context import ExecutionContext
from ..nodes import DelayData, NodeData, WorkflowNode
from .base import NodeExecutor

logger = logging.getLogger(__name__)


class DelayExecutor(NodeExecutor):
    async def _run(self, node: WorkflowNode, context: ExecutionContext, previous_outputs: Dict[str, Any]) -> Dict[str, Any]:
        data: DelayData = self.load_data(node)

        logger.info(f"Node {node.id} waiting {data.duration}s")
        await asyncio.sleep(data.duration)

        return {
            "duration": data.duration,
            "delayMs": int(data.duration * 1000),
            "executedAt": datetime.now(timezone.utc).isoformat(),
        }

    def _check(self, raw: Dict[str, Any], data: Optional[NodeData]) -> List[str]:
        duration = raw.get("duration")
        if isinstance(duration, (int, float)) and not isinstance(duration, bool) and duration >= 1:
            return []
        if isinstance(duration, str) and "{{" in duration:
            return []
        return ["Delay duration must be at least 1 second"]
