"""Drift detection by comparing sync timestamps across graph edges.

A reconciliation pass independent of the mutation path: it catches staleness
that event-driven propagation missed. It only reports; turning entries into
alerts is the AlertGenerator's job.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from pydantic import BaseModel, Field

from factorygraph.graph.classifier import classify_drift, describe_drift, severity_for_drift_type, suggest_action
from factorygraph.graph.clock import Clock, as_utc, utcnow
from factorygraph.graph.repository import GraphRepository
from factorygraph.storage.models import DriftSeverity, DriftType, GraphEdge, GraphNode

logger = logging.getLogger(__name__)


class DriftReportEntry(BaseModel):
    source_node_id: str
    target_node_id: str
    drift_type: DriftType
    severity: DriftSeverity
    description: str
    suggested_action: str


class DriftReport(BaseModel):
    project_id: str
    scanned_at: datetime
    total_nodes_scanned: int = Field(ge=0)
    entries: list[DriftReportEntry] = Field(default_factory=list)


class DriftDetectorConfig(BaseModel):
    # Only flag drift if the source was synced more than this many seconds after the target.
    staleness_threshold_seconds: int = Field(default=0, ge=0)


class DriftDetector:
    """Scans a project's edges for targets that are older than their sources."""

    def __init__(
        self,
        repo: GraphRepository,
        config: DriftDetectorConfig | None = None,
        *,
        clock: Clock = utcnow,
    ):
        self.repo = repo
        self.config = config or DriftDetectorConfig()
        self._clock = clock

    async def scan_project(self, project_id: str) -> DriftReport:
        nodes = await self.repo.list_nodes(project_id)
        node_map = {node.id: node for node in nodes}
        entries: list[DriftReportEntry] = []

        for node in nodes:
            for edge in await self.repo.find_edges(project_id, source_node_id=node.id):
                target = node_map.get(edge.target_node_id)
                if target is None:
                    continue
                entry = self.check_edge(node, target, edge)
                if entry is not None:
                    entries.append(entry)

        report = DriftReport(
            project_id=project_id,
            scanned_at=self._clock(),
            total_nodes_scanned=len(nodes),
            entries=entries,
        )
        logger.info(
            "drift_scan_completed",
            extra={"project_id": project_id, "nodes_scanned": len(nodes), "entries": len(entries)},
        )
        return report

    async def scan_node(self, project_id: str, node_id: str) -> list[DriftReportEntry]:
        """Check the edges touching one node, in both directions."""
        nodes = await self.repo.list_nodes(project_id)
        node_map = {node.id: node for node in nodes}
        node = node_map.get(node_id)
        if node is None:
            return []

        entries: list[DriftReportEntry] = []

        for edge in await self.repo.find_edges(project_id, source_node_id=node_id):
            target = node_map.get(edge.target_node_id)
            if target is None:
                continue
            entry = self.check_edge(node, target, edge)
            if entry is not None:
                entries.append(entry)

        for edge in await self.repo.find_edges(project_id, target_node_id=node_id):
            source = node_map.get(edge.source_node_id)
            if source is None:
                continue
            entry = self.check_edge(source, node, edge)
            if entry is not None:
                entries.append(entry)

        return entries

    def check_edge(self, source: GraphNode, target: GraphNode, edge: GraphEdge) -> DriftReportEntry | None:
        drift_type = classify_drift(source.entity_type, target.entity_type, edge.edge_type)
        if drift_type is None:
            return None

        # A node that has never synced cannot be judged stale.
        if source.last_synced_at is None or target.last_synced_at is None:
            return None

        threshold = timedelta(seconds=self.config.staleness_threshold_seconds)
        if as_utc(source.last_synced_at) <= as_utc(target.last_synced_at) + threshold:
            return None

        return DriftReportEntry(
            source_node_id=source.id,
            target_node_id=target.id,
            drift_type=drift_type,
            severity=severity_for_drift_type(drift_type),
            description=describe_drift(source, target, drift_type),
            suggested_action=suggest_action(source, target, drift_type),
        )
