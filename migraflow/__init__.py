"""
migraflow: workflow automation engine for database migrations.

Workflows are DAGs of trigger, action, condition, approval, notification
and delay nodes. See migraflow.core.engine for the entry point.
"""

__version__ = "0.1.0"
