"""Graph persistence contract and its SQLAlchemy implementation."""

from __future__ import annotations

from collections.abc import Collection
from datetime import datetime
from typing import Any, Final, Protocol

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from factorygraph.graph.traversal import breadth_first
from factorygraph.graph.types import TraversalDirection, TraversalResult
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


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Final = _Unset()

StatusFilter = DriftAlertStatus | Collection[DriftAlertStatus] | None


def status_values(status: StatusFilter) -> list[DriftAlertStatus] | None:
    """Normalize a single status or a collection of statuses to a list."""
    if status is None:
        return None
    if isinstance(status, str):
        return [DriftAlertStatus(status)]
    return [DriftAlertStatus(s) for s in status]


class GraphRepository(Protocol):
    """Storage operations consumed by every graph component.

    Each call is its own unit of work; nothing spans a whole traversal.
    """

    async def find_node(self, project_id: str, entity_type: GraphEntityType, entity_id: str) -> GraphNode | None: ...

    async def find_node_by_id(self, node_id: str) -> GraphNode | None: ...

    async def create_node(
        self,
        *,
        project_id: str,
        entity_type: GraphEntityType,
        entity_id: str,
        label: str,
        content_hash: str | None,
        last_synced_at: datetime | None,
        metadata: dict | None = None,
    ) -> GraphNode: ...

    async def update_node(
        self,
        node_id: str,
        updates: dict[str, Any],
        *,
        expected_hash: str | None | _Unset = UNSET,
    ) -> GraphNode | None:
        """Apply ``updates``; when ``expected_hash`` is given, only if the stored hash still matches.

        Returns None when the node is gone or the hash moved on.
        """
        ...

    async def delete_node(self, node_id: str) -> None: ...

    async def list_nodes(self, project_id: str, entity_type: GraphEntityType | None = None) -> list[GraphNode]: ...

    async def create_edge(
        self,
        *,
        project_id: str,
        source_node_id: str,
        target_node_id: str,
        edge_type: GraphEdgeType,
        metadata: dict | None = None,
    ) -> GraphEdge: ...

    async def delete_edge(self, edge_id: str) -> None: ...

    async def find_edges(
        self,
        project_id: str,
        *,
        source_node_id: str | None = None,
        target_node_id: str | None = None,
        edge_type: GraphEdgeType | None = None,
    ) -> list[GraphEdge]: ...

    async def traverse(self, node_id: str, direction: TraversalDirection, max_depth: int) -> TraversalResult | None: ...

    async def create_drift_alert(
        self,
        *,
        project_id: str,
        source_node_id: str,
        target_node_id: str | None,
        drift_type: DriftType,
        description: str,
        severity: DriftSeverity,
        status: DriftAlertStatus = DriftAlertStatus.open,
    ) -> DriftAlert: ...

    async def find_drift_alert(self, alert_id: str) -> DriftAlert | None: ...

    async def list_drift_alerts(
        self,
        project_id: str,
        *,
        status: StatusFilter = None,
        drift_type: DriftType | None = None,
        severity: DriftSeverity | None = None,
        source_node_id: str | None = None,
        target_node_id: str | None = None,
        created_before: datetime | None = None,
        limit: int | None = None,
    ) -> list[DriftAlert]: ...

    async def update_drift_alert(self, alert_id: str, updates: dict[str, Any]) -> DriftAlert | None: ...


class SqlGraphRepository:
    """GraphRepository over an AsyncSession. Writes are flushed, never committed."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # -- nodes ---------------------------------------------------------------

    async def find_node(self, project_id: str, entity_type: GraphEntityType, entity_id: str) -> GraphNode | None:
        query = select(GraphNode).where(
            GraphNode.project_id == project_id,
            GraphNode.entity_type == GraphEntityType(entity_type),
            GraphNode.entity_id == entity_id,
        )
        result = await self.db.execute(query)
        return result.scalars().first()

    async def find_node_by_id(self, node_id: str) -> GraphNode | None:
        return await self.db.get(GraphNode, node_id)

    async def create_node(
        self,
        *,
        project_id: str,
        entity_type: GraphEntityType,
        entity_id: str,
        label: str,
        content_hash: str | None,
        last_synced_at: datetime | None,
        metadata: dict | None = None,
    ) -> GraphNode:
        node = GraphNode(
            project_id=project_id,
            entity_type=GraphEntityType(entity_type),
            entity_id=entity_id,
            label=label,
            meta=metadata or {},
            content_hash=content_hash,
            last_synced_at=last_synced_at,
        )
        self.db.add(node)
        await self.db.flush()
        return node

    async def update_node(
        self,
        node_id: str,
        updates: dict[str, Any],
        *,
        expected_hash: str | None | _Unset = UNSET,
    ) -> GraphNode | None:
        stmt = update(GraphNode).where(GraphNode.id == node_id)
        if expected_hash is not UNSET:
            if expected_hash is None:
                stmt = stmt.where(GraphNode.content_hash.is_(None))
            else:
                stmt = stmt.where(GraphNode.content_hash == expected_hash)
        values = {getattr(GraphNode, key): value for key, value in updates.items()}
        result = await self.db.execute(stmt.values(values).execution_options(synchronize_session=False))
        if result.rowcount == 0:
            return None
        return await self.db.get(GraphNode, node_id, populate_existing=True)

    async def delete_node(self, node_id: str) -> None:
        # Explicit edge cleanup for backends that do not enforce ON DELETE CASCADE.
        await self.db.execute(
            delete(GraphEdge).where(
                or_(GraphEdge.source_node_id == node_id, GraphEdge.target_node_id == node_id)
            )
        )
        await self.db.execute(delete(GraphNode).where(GraphNode.id == node_id))
        await self.db.flush()

    async def list_nodes(self, project_id: str, entity_type: GraphEntityType | None = None) -> list[GraphNode]:
        query = select(GraphNode).where(GraphNode.project_id == project_id)
        if entity_type is not None:
            query = query.where(GraphNode.entity_type == GraphEntityType(entity_type))
        query = query.order_by(GraphNode.created_at.asc(), GraphNode.id.asc())
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # -- edges ---------------------------------------------------------------

    async def create_edge(
        self,
        *,
        project_id: str,
        source_node_id: str,
        target_node_id: str,
        edge_type: GraphEdgeType,
        metadata: dict | None = None,
    ) -> GraphEdge:
        edge = GraphEdge(
            project_id=project_id,
            source_node_id=source_node_id,
            target_node_id=target_node_id,
            edge_type=GraphEdgeType(edge_type),
            meta=metadata or {},
        )
        self.db.add(edge)
        await self.db.flush()
        return edge

    async def delete_edge(self, edge_id: str) -> None:
        await self.db.execute(delete(GraphEdge).where(GraphEdge.id == edge_id))
        await self.db.flush()

    async def find_edges(
        self,
        project_id: str,
        *,
        source_node_id: str | None = None,
        target_node_id: str | None = None,
        edge_type: GraphEdgeType | None = None,
    ) -> list[GraphEdge]:
        query = select(GraphEdge).where(GraphEdge.project_id == project_id)
        if source_node_id is not None:
            query = query.where(GraphEdge.source_node_id == source_node_id)
        if target_node_id is not None:
            query = query.where(GraphEdge.target_node_id == target_node_id)
        if edge_type is not None:
            query = query.where(GraphEdge.edge_type == GraphEdgeType(edge_type))
        query = query.order_by(GraphEdge.created_at.asc(), GraphEdge.id.asc())
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def traverse(self, node_id: str, direction: TraversalDirection, max_depth: int) -> TraversalResult | None:
        root = await self.find_node_by_id(node_id)
        if root is None:
            return None
        return await breadth_first(self, root, direction, max_depth)

    # -- drift alerts --------------------------------------------------------

    async def create_drift_alert(
        self,
        *,
        project_id: str,
        source_node_id: str,
        target_node_id: str | None,
        drift_type: DriftType,
        description: str,
        severity: DriftSeverity,
        status: DriftAlertStatus = DriftAlertStatus.open,
    ) -> DriftAlert:
        alert = DriftAlert(
            project_id=project_id,
            source_node_id=source_node_id,
            target_node_id=target_node_id,
            drift_type=DriftType(drift_type),
            description=description,
            severity=DriftSeverity(severity),
            status=DriftAlertStatus(status),
        )
        self.db.add(alert)
        await self.db.flush()
        return alert

    async def find_drift_alert(self, alert_id: str) -> DriftAlert | None:
        return await self.db.get(DriftAlert, alert_id)

    async def list_drift_alerts(
        self,
        project_id: str,
        *,
        status: StatusFilter = None,
        drift_type: DriftType | None = None,
        severity: DriftSeverity | None = None,
        source_node_id: str | None = None,
        target_node_id: str | None = None,
        created_before: datetime | None = None,
        limit: int | None = None,
    ) -> list[DriftAlert]:
        query = select(DriftAlert).where(DriftAlert.project_id == project_id)
        statuses = status_values(status)
        if statuses is not None:
            query = query.where(DriftAlert.status.in_(statuses))
        if drift_type is not None:
            query = query.where(DriftAlert.drift_type == DriftType(drift_type))
        if severity is not None:
            query = query.where(DriftAlert.severity == DriftSeverity(severity))
        if source_node_id is not None:
            query = query.where(DriftAlert.source_node_id == source_node_id)
        if target_node_id is not None:
            query = query.where(DriftAlert.target_node_id == target_node_id)
        if created_before is not None:
            query = query.where(DriftAlert.created_at < created_before)
        query = query.order_by(DriftAlert.created_at.desc(), DriftAlert.id.desc())
        if limit is not None:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def update_drift_alert(self, alert_id: str, updates: dict[str, Any]) -> DriftAlert | None:
        alert = await self.db.get(DriftAlert, alert_id)
        if alert is None:
            return None
        for key, value in updates.items():
            setattr(alert, key, value)
        await self.db.flush()
        return alert
