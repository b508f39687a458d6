# conftest.py - Global pytest configuration
"""
Global pytest configuration.

Provides an in-memory GraphRepository for engine tests, a controllable clock,
and a throwaway SQLite database for repository and queue integration tests.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from factorygraph.db_base import Base
from factorygraph.graph.repository import UNSET, StatusFilter, status_values
from factorygraph.graph.service import GraphService
from factorygraph.graph.traversal import breadth_first
from factorygraph.storage.models import (
    DriftAlert,
    DriftAlertStatus,
    DriftSeverity,
    DriftType,
    GraphEdge,
    GraphEdgeType,
    GraphEntityType,
    GraphNode,
)

PROJECT = "proj-1"


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 1.0) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class InMemoryGraphRepository:
    """Dict-backed GraphRepository. Counts writes so tests can assert idempotence."""

    def __init__(self):
        self.nodes: dict[str, GraphNode] = {}
        self.edges: dict[str, GraphEdge] = {}
        self.alerts: dict[str, DriftAlert] = {}
        self.writes = 0
        self._tick = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def _stamp(self) -> datetime:
        # Strictly increasing so "newest first" ordering is deterministic.
        self._tick = self._tick + timedelta(microseconds=1)
        return self._tick

    # -- seeding helpers -----------------------------------------------------

    def seed_node(
        self,
        entity_type: GraphEntityType,
        entity_id: str,
        *,
        project_id: str = PROJECT,
        label: str | None = None,
        content_hash: str | None = None,
        last_synced_at: datetime | None = None,
        meta: dict | None = None,
    ) -> GraphNode:
        now = self._stamp()
        node = GraphNode(
            id=str(uuid4()),
            project_id=project_id,
            entity_type=GraphEntityType(entity_type),
            entity_id=entity_id,
            label=label or entity_id,
            meta=meta or {},
            content_hash=content_hash,
            last_synced_at=last_synced_at,
            created_at=now,
            updated_at=now,
        )
        self.nodes[node.id] = node
        return node

    def seed_edge(
        self,
        source: GraphNode,
        target: GraphNode,
        edge_type: GraphEdgeType,
        *,
        project_id: str = PROJECT,
    ) -> GraphEdge:
        edge = GraphEdge(
            id=str(uuid4()),
            project_id=project_id,
            source_node_id=source.id,
            target_node_id=target.id,
            edge_type=GraphEdgeType(edge_type),
            meta={},
            created_at=self._stamp(),
        )
        self.edges[edge.id] = edge
        return edge

    # -- nodes ---------------------------------------------------------------

    async def find_node(self, project_id, entity_type, entity_id):
        for node in self.nodes.values():
            if (
                node.project_id == project_id
                and node.entity_type == GraphEntityType(entity_type)
                and node.entity_id == entity_id
            ):
                return node
        return None

    async def find_node_by_id(self, node_id):
        return self.nodes.get(node_id)

    async def create_node(self, *, project_id, entity_type, entity_id, label, content_hash, last_synced_at, metadata=None):
        self.writes += 1
        node = self.seed_node(
            entity_type,
            entity_id,
            project_id=project_id,
            label=label,
            content_hash=content_hash,
            last_synced_at=last_synced_at,
            meta=metadata,
        )
        return node

    async def update_node(self, node_id, updates: dict[str, Any], *, expected_hash=UNSET):
        node = self.nodes.get(node_id)
        if node is None:
            return None
        if expected_hash is not UNSET and node.content_hash != expected_hash:
            return None
        self.writes += 1
        for key, value in updates.items():
            setattr(node, key, value)
        node.updated_at = self._stamp()
        return node

    async def delete_node(self, node_id):
        self.writes += 1
        self.nodes.pop(node_id, None)
        for edge_id in [
            e.id for e in self.edges.values() if node_id in (e.source_node_id, e.target_node_id)
        ]:
            del self.edges[edge_id]

    async def list_nodes(self, project_id, entity_type=None):
        return [
            n for n in self.nodes.values()
            if n.project_id == project_id and (entity_type is None or n.entity_type == GraphEntityType(entity_type))
        ]

    # -- edges ---------------------------------------------------------------

    async def create_edge(self, *, project_id, source_node_id, target_node_id, edge_type, metadata=None):
        self.writes += 1
        edge = GraphEdge(
            id=str(uuid4()),
            project_id=project_id,
            source_node_id=source_node_id,
            target_node_id=target_node_id,
            edge_type=GraphEdgeType(edge_type),
            meta=metadata or {},
            created_at=self._stamp(),
        )
        self.edges[edge.id] = edge
        return edge

    async def delete_edge(self, edge_id):
        self.writes += 1
        self.edges.pop(edge_id, None)

    async def find_edges(self, project_id, *, source_node_id=None, target_node_id=None, edge_type=None):
        return [
            e for e in self.edges.values()
            if e.project_id == project_id
            and (source_node_id is None or e.source_node_id == source_node_id)
            and (target_node_id is None or e.target_node_id == target_node_id)
            and (edge_type is None or e.edge_type == GraphEdgeType(edge_type))
        ]

    async def traverse(self, node_id, direction, max_depth):
        root = self.nodes.get(node_id)
        if root is None:
            return None
        return await breadth_first(self, root, direction, max_depth)

    # -- drift alerts --------------------------------------------------------

    async def create_drift_alert(
        self,
        *,
        project_id,
        source_node_id,
        target_node_id,
        drift_type,
        description,
        severity,
        status=DriftAlertStatus.open,
    ):
        self.writes += 1
        now = self._stamp()
        alert = DriftAlert(
            id=str(uuid4()),
            project_id=project_id,
            source_node_id=source_node_id,
            target_node_id=target_node_id,
            drift_type=DriftType(drift_type),
            description=description,
            severity=DriftSeverity(severity),
            status=DriftAlertStatus(status),
            resolved_by=None,
            resolved_at=None,
            created_at=now,
            updated_at=now,
        )
        self.alerts[alert.id] = alert
        return alert

    async def find_drift_alert(self, alert_id):
        return self.alerts.get(alert_id)

    async def list_drift_alerts(
        self,
        project_id,
        *,
        status: StatusFilter = None,
        drift_type=None,
        severity=None,
        source_node_id=None,
        target_node_id=None,
        created_before=None,
        limit=None,
    ):
        statuses = status_values(status)
        matches = [
            a for a in self.alerts.values()
            if a.project_id == project_id
            and (statuses is None or a.status in statuses)
            and (drift_type is None or a.drift_type == DriftType(drift_type))
            and (severity is None or a.severity == DriftSeverity(severity))
            and (source_node_id is None or a.source_node_id == source_node_id)
            and (target_node_id is None or a.target_node_id == target_node_id)
            and (created_before is None or a.created_at < created_before)
        ]
        matches.sort(key=lambda a: a.created_at, reverse=True)
        return matches[:limit] if limit is not None else matches

    async def update_drift_alert(self, alert_id, updates):
        alert = self.alerts.get(alert_id)
        if alert is None:
            return None
        self.writes += 1
        for key, value in updates.items():
            setattr(alert, key, value)
        alert.updated_at = self._stamp()
        return alert


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repo() -> InMemoryGraphRepository:
    return InMemoryGraphRepository()


@pytest.fixture
def service(repo, clock) -> GraphService:
    return GraphService(repo, clock=clock)


@pytest.fixture(scope="function")
async def session_maker():
    """
    Fresh in-memory SQLite database per test.

    StaticPool keeps the single connection alive so every session sees the
    same database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture(scope="function")
async def async_db(session_maker):
    """Provide a session on the in-memory database."""
    async with session_maker() as session:
        yield session
