"""Knowledge graph facade used by domain write paths and read endpoints."""

from __future__ import annotations

import logging
from datetime import datetime
from hashlib import sha256

from factorygraph.graph.alerts import can_transition
from factorygraph.graph.classifier import classify_drift, describe_drift, severity_for_depth
from factorygraph.graph.clock import Clock, utcnow
from factorygraph.graph.drift_detector import DriftDetector
from factorygraph.graph.errors import (
    AlertNotFoundError,
    ConcurrentUpdateError,
    InvalidAlertTransitionError,
    NodeNotFoundError,
)
from factorygraph.graph.repository import GraphRepository, StatusFilter
from factorygraph.graph.types import (
    AffectedNode,
    NodeRef,
    PropagationEvent,
    RelatedNode,
    TraversalDirection,
    TraversalResult,
)
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

logger = logging.getLogger(__name__)

RESOLUTION_STATUSES = (DriftAlertStatus.resolved, DriftAlertStatus.dismissed)


def hash_content(content: str) -> str:
    """Hex SHA-256 of the UTF-8 encoded content."""
    return sha256(content.encode("utf-8")).hexdigest()


class GraphService:
    """Node and edge lifecycle, inline change propagation and alert resolution.

    Node hash writes are compare-and-swap on ``content_hash``: a writer that
    lost the race re-reads the node and tries again, up to
    ``max_update_retries`` times, before raising ConcurrentUpdateError.
    """

    def __init__(
        self,
        repo: GraphRepository,
        *,
        clock: Clock = utcnow,
        propagation_depth: int = 3,
        max_update_retries: int = 3,
    ):
        self.repo = repo
        self._clock = clock
        self.propagation_depth = propagation_depth
        self.max_update_retries = max_update_retries

    # -- nodes ---------------------------------------------------------------

    async def ensure_node(
        self,
        project_id: str,
        entity_type: GraphEntityType,
        entity_id: str,
        label: str,
        content: str,
        *,
        metadata: dict | None = None,
    ) -> GraphNode:
        """Create the node or sync its label and hash. Never raises drift alerts."""
        content_hash = hash_content(content)
        existing = await self.repo.find_node(project_id, entity_type, entity_id)

        if existing is None:
            node = await self.repo.create_node(
                project_id=project_id,
                entity_type=entity_type,
                entity_id=entity_id,
                label=label,
                content_hash=content_hash,
                last_synced_at=self._clock(),
                metadata=metadata,
            )
            logger.info(
                "graph_node_created",
                extra={"project_id": project_id, "entity_type": str(entity_type), "entity_id": entity_id},
            )
            return node

        node, _ = await self._sync_node(existing, content_hash, label=label)
        return node

    async def remove_node(self, project_id: str, entity_type: GraphEntityType, entity_id: str) -> None:
        node = await self.repo.find_node(project_id, entity_type, entity_id)
        if node is None:
            return
        await self.repo.delete_node(node.id)
        logger.info(
            "graph_node_removed",
            extra={"project_id": project_id, "entity_type": str(entity_type), "entity_id": entity_id},
        )

    # -- edges ---------------------------------------------------------------

    async def connect(
        self,
        project_id: str,
        source: NodeRef,
        target: NodeRef,
        edge_type: GraphEdgeType,
        metadata: dict | None = None,
    ) -> GraphEdge:
        source_node = await self.repo.find_node(project_id, source.entity_type, source.entity_id)
        if source_node is None:
            raise NodeNotFoundError(source.entity_type, source.entity_id)
        target_node = await self.repo.find_node(project_id, target.entity_type, target.entity_id)
        if target_node is None:
            raise NodeNotFoundError(target.entity_type, target.entity_id)

        return await self.repo.create_edge(
            project_id=project_id,
            source_node_id=source_node.id,
            target_node_id=target_node.id,
            edge_type=edge_type,
            metadata=metadata,
        )

    async def disconnect(
        self,
        project_id: str,
        source_node_id: str,
        target_node_id: str,
        edge_type: GraphEdgeType,
    ) -> None:
        edges = await self.repo.find_edges(
            project_id,
            source_node_id=source_node_id,
            target_node_id=target_node_id,
            edge_type=edge_type,
        )
        for edge in edges:
            await self.repo.delete_edge(edge.id)

    # -- change propagation --------------------------------------------------

    async def propagate_change(
        self,
        project_id: str,
        entity_type: GraphEntityType,
        entity_id: str,
        new_content: str,
    ) -> PropagationEvent:
        node = await self.repo.find_node(project_id, entity_type, entity_id)
        if node is None:
            raise NodeNotFoundError(entity_type, entity_id)

        node, changed = await self._sync_node(node, hash_content(new_content))
        event = PropagationEvent(changed_node=node, content_changed=changed)
        if not changed:
            return event

        traversal = await self.repo.traverse(node.id, "downstream", self.propagation_depth)
        if traversal is None:
            return event

        for layer in traversal.layers:
            for reached, edge in zip(layer.nodes, layer.edges):
                event.affected_nodes.append(AffectedNode(node=reached, edge=edge, depth=layer.depth))

                drift_type = classify_drift(node.entity_type, reached.entity_type, edge.edge_type)
                if drift_type is None:
                    continue
                alert = await self.repo.create_drift_alert(
                    project_id=project_id,
                    source_node_id=node.id,
                    target_node_id=reached.id,
                    drift_type=drift_type,
                    description=describe_drift(node, reached, drift_type, layer.depth),
                    severity=severity_for_depth(layer.depth),
                )
                event.alerts.append(alert)

        logger.info(
            "graph_change_propagated",
            extra={
                "project_id": project_id,
                "node_id": node.id,
                "affected": len(event.affected_nodes),
                "alerts_created": len(event.alerts),
            },
        )
        return event

    async def detect_drift(self, project_id: str) -> list[DriftAlert]:
        """Full reconciliation scan; every finding is persisted as a medium alert."""
        report = await DriftDetector(self.repo, clock=self._clock).scan_project(project_id)
        alerts = []
        for entry in report.entries:
            alerts.append(
                await self.repo.create_drift_alert(
                    project_id=project_id,
                    source_node_id=entry.source_node_id,
                    target_node_id=entry.target_node_id,
                    drift_type=entry.drift_type,
                    description=entry.description,
                    severity=DriftSeverity.medium,
                )
            )
        return alerts

    # -- reads ---------------------------------------------------------------

    async def get_context(
        self,
        project_id: str,
        entity_type: GraphEntityType,
        entity_id: str,
        direction: TraversalDirection = "both",
        max_depth: int = 2,
    ) -> TraversalResult | None:
        node = await self.repo.find_node(project_id, entity_type, entity_id)
        if node is None:
            return None
        return await self.repo.traverse(node.id, direction, max_depth)

    async def get_related(self, project_id: str, entity_type: GraphEntityType, entity_id: str) -> list[RelatedNode]:
        node = await self.repo.find_node(project_id, entity_type, entity_id)
        if node is None:
            return []

        related: list[RelatedNode] = []
        for edge in await self.repo.find_edges(project_id, source_node_id=node.id):
            other = await self.repo.find_node_by_id(edge.target_node_id)
            if other is not None:
                related.append(RelatedNode(node=other, edge=edge, direction="target"))
        for edge in await self.repo.find_edges(project_id, target_node_id=node.id):
            other = await self.repo.find_node_by_id(edge.source_node_id)
            if other is not None:
                related.append(RelatedNode(node=other, edge=edge, direction="source"))
        return related

    async def get_drift_alerts(
        self,
        project_id: str,
        status: StatusFilter = None,
        drift_type: DriftType | None = None,
        severity: DriftSeverity | None = None,
        created_before: datetime | None = None,
        limit: int | None = None,
    ) -> list[DriftAlert]:
        """Newest first. Pass the oldest ``created_at`` seen as ``created_before`` to page."""
        return await self.repo.list_drift_alerts(
            project_id,
            status=status,
            drift_type=drift_type,
            severity=severity,
            created_before=created_before,
            limit=limit,
        )

    # -- alert resolution ----------------------------------------------------

    async def acknowledge_drift_alert(self, alert_id: str) -> DriftAlert:
        return await self._transition_alert(alert_id, DriftAlertStatus.acknowledged, {})

    async def resolve_drift_alert(
        self,
        alert_id: str,
        user_id: str,
        status: DriftAlertStatus = DriftAlertStatus.resolved,
    ) -> DriftAlert:
        status = DriftAlertStatus(status)
        if status not in RESOLUTION_STATUSES:
            raise InvalidAlertTransitionError(f"Cannot resolve alert {alert_id} with status {status.value}")
        return await self._transition_alert(
            alert_id,
            status,
            {"resolved_by": user_id, "resolved_at": self._clock()},
        )

    async def _transition_alert(self, alert_id: str, status: DriftAlertStatus, extra_updates: dict) -> DriftAlert:
        alert = await self.repo.find_drift_alert(alert_id)
        if alert is None:
            raise AlertNotFoundError(f"Drift alert not found: {alert_id}")
        current = DriftAlertStatus(alert.status)
        if not can_transition(current, status):
            raise InvalidAlertTransitionError(
                f"Drift alert {alert_id} cannot move from {current.value} to {status.value}"
            )

        updated = await self.repo.update_drift_alert(alert_id, {"status": status, **extra_updates})
        if updated is None:
            raise AlertNotFoundError(f"Drift alert not found: {alert_id}")
        logger.info(
            "drift_alert_status_changed",
            extra={"alert_id": alert_id, "from_status": current.value, "to_status": status.value},
        )
        return updated

    # -- internals -----------------------------------------------------------

    async def _sync_node(
        self,
        node: GraphNode,
        content_hash: str,
        *,
        label: str | None = None,
    ) -> tuple[GraphNode, bool]:
        """Write ``content_hash`` (and ``label``) unless already current.

        Returns the latest node and whether the content hash changed.
        """
        for attempt in range(self.max_update_retries + 1):
            hash_changed = node.content_hash != content_hash
            label_changed = label is not None and node.label != label
            if not hash_changed and not label_changed:
                return node, False

            updates = {"content_hash": content_hash, "last_synced_at": self._clock()}
            if label is not None:
                updates["label"] = label

            updated = await self.repo.update_node(node.id, updates, expected_hash=node.content_hash)
            if updated is not None:
                return updated, hash_changed

            logger.warning(
                "graph_node_update_conflict",
                extra={"node_id": node.id, "attempt": attempt + 1},
            )
            refreshed = await self.repo.find_node_by_id(node.id)
            if refreshed is None:
                raise NodeNotFoundError(node.entity_type, node.entity_id)
            node = refreshed

        raise ConcurrentUpdateError(
            f"Node {node.id} changed concurrently {self.max_update_retries + 1} times; giving up"
        )
