"""
Database collaborators used by action nodes.

- DatabaseConnectionService: look up, test and query a user's database connection
- MigrationService: discover / dry-run / execute / roll back migrations

SqlAlchemyConnectionService is a default realization that maps connection
ids to SQLAlchemy URLs. Migration bookkeeping lives outside this package,
so MigrationService has no default realization.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import DatabaseError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectionInfo:
    id: str
    url: str
    name: Optional[str] = None

    @property
    def dialect(self) -> str:
        return self.url.split(":", 1)[0].split("+", 1)[0]


class DatabaseConnectionService(ABC):
    @abstractmethod
    async def get_connection(self, connection_id: str) -> Optional[ConnectionInfo]:
        """Return the connection, or None when the id is unknown."""

    @abstractmethod
    async def test_connection(self, connection_id: str) -> Dict[str, Any]:
        """Return {"success": bool, "latency": ms} or {"success": False, "error": str}."""

    @abstractmethod
    async def execute_query(
        self,
        connection: ConnectionInfo,
        query: str,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Run a query. Returns {"rows": [...], "rowCount": n}."""


class MigrationService(ABC):
    """Migration operations against a user's database connection."""

    @abstractmethod
    async def discover(self, connection: ConnectionInfo, team_id: Optional[str]) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def dry_run(self, connection: ConnectionInfo, migrations: Any) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def execute(self, connection: ConnectionInfo, migrations: Any) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def rollback(self, connection: ConnectionInfo, migrations: Any, reason: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def run_migration(self, connection: ConnectionInfo, migration_id: str) -> Dict[str, Any]:
        ...


class SqlAlchemyConnectionService(DatabaseConnectionService):
    """
    Connection service backed by SQLAlchemy engines.

    Example:
        service = SqlAlchemyConnectionService({
            "analytics": "postgresql://user:pass@db/analytics",
        })
    """

    def __init__(self, urls: Dict[str, str]):
        self._urls = dict(urls)
        self._engines: Dict[str, Engine] = {}

    def _engine_for(self, connection: ConnectionInfo) -> Engine:
        engine = self._engines.get(connection.id)
        if engine is None:
            engine = create_engine(connection.url, pool_pre_ping=True)
            self._engines[connection.id] = engine
        return engine

    async def get_connection(self, connection_id: str) -> Optional[ConnectionInfo]:
        url = self._urls.get(connection_id)
        if url is None:
            return None
        return ConnectionInfo(id=connection_id, url=url)

    async def test_connection(self, connection_id: str) -> Dict[str, Any]:
        connection = await self.get_connection(connection_id)
        if connection is None:
            return {"success": False, "error": f"Database connection not found: {connection_id}"}

        start = time.monotonic()
        try:
            await self.execute_query(connection, "SELECT 1")
        except DatabaseError as e:
            return {"success": False, "error": e.message}
        return {"success": True, "latency": int((time.monotonic() - start) * 1000)}

    async def execute_query(
        self,
        connection: ConnectionInfo,
        query: str,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        return await asyncio.to_thread(self._execute_sync, connection, query, parameters or {})

    def _execute_sync(self, connection: ConnectionInfo, query: str, parameters: Dict[str, Any]) -> Dict[str, Any]:
        engine = self._engine_for(connection)
        try:
            with engine.begin() as conn:
                result = conn.execute(text(query), parameters)
                if result.returns_rows:
                    rows = [dict(row) for row in result.mappings()]
                    return {"rows": rows, "rowCount": len(rows)}
                return {"rows": [], "rowCount": result.rowcount}
        except SQLAlchemyError as e:
            logger.warning(f"Query failed on connection {connection.id}: {e}")
            raise DatabaseError(f"Query failed: {e}") from e

    def dispose(self) -> None:
        for engine in self._engines.values():
            engine.dispose()
        self._engines.clear()
