"""
Celery Application Configuration for migraflow

Runs workflow node loops off the request path when MIGRAFLOW_DISPATCH=celery.

Architecture:
- Message Broker: Redis
- Result Backend: Redis
- Queue: "workflows" (executions and resumes)
- Beat: expires overdue approval requests every minute
"""

import logging

from celery import Celery
from kombu import Exchange, Queue

from ..config import get_settings
from ..core.logging_config import setup_logging

settings = get_settings()

# Workers log JSON by default
setup_logging(level=settings.log_level, json_logs=True, log_file=settings.log_file)

logger = logging.getLogger(__name__)

REDIS_URL = settings.redis_url

celery_app = Celery("migraflow")

celery_app.conf.update(
    # ============================================================================
    # BROKER & BACKEND
    # ============================================================================
    broker_url=REDIS_URL,
    result_backend=REDIS_URL,
    broker_connection_retry_on_startup=True,

    # ============================================================================
    # SERIALIZATION
    # ============================================================================
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],

    # ============================================================================
    # TIMEZONE
    # ============================================================================
    timezone="UTC",
    enable_utc=True,

    # ============================================================================
    # TASK EXECUTION
    # ============================================================================
    task_track_started=True,

    # Acknowledge after the node loop returns; the loop itself is resumable
    task_acks_late=True,
    worker_prefetch_multiplier=1,

    # Results are status dicts only, the execution row is the record
    result_expires=86400,

    # ============================================================================
    # TASK ROUTING
    # ============================================================================
    task_default_queue="workflows",
    task_default_exchange="workflows",
    task_default_routing_key="workflow.execute",
    task_queues=(
        Queue(
            "workflows",
            Exchange("workflows"),
            routing_key="workflow.execute",
        ),
    ),
    task_routes={
        "run_execution_task": {"queue": "workflows", "routing_key": "workflow.execute"},
        "resume_execution_task": {"queue": "workflows", "routing_key": "workflow.execute"},
        "expire_approvals_task": {"queue": "workflows", "routing_key": "workflow.execute"},
    },

    # ============================================================================
    # WORKER CONFIGURATION
    # ============================================================================
    worker_max_tasks_per_child=1000,
    worker_send_task_events=True,
    task_send_sent_event=True,
)

# ============================================================================
# BEAT SCHEDULE (Periodic Tasks)
# ============================================================================
celery_app.conf.beat_schedule = {
    "expire-overdue-approvals": {
        "task": "expire_approvals_task",
        "schedule": 60.0,
    },
}

logger.info(f"Broker: {REDIS_URL.split('@')[1] if '@' in REDIS_URL else REDIS_URL}")

# Registers the tasks; must come after celery_app is configured
from . import tasks  # noqa: F401, E402
