"""Change propagation engine.

When a node is updated, walks outgoing edges breadth-first and records drift
alerts for downstream nodes. Propagation depth and batch size are
configurable; batches are processed sequentially.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from factorygraph.graph.alerts import has_unresolved_alert
from factorygraph.graph.classifier import classify_drift, describe_drift, severity_for_depth
from factorygraph.graph.repository import GraphRepository
from factorygraph.storage.models import GraphNode

logger = logging.getLogger(__name__)


class PropagatorConfig(BaseModel):
    # Maximum number of hops to propagate changes.
    max_depth: int = Field(default=2, gt=0)
    # Maximum frontier nodes grouped per batch.
    batch_size: int = Field(default=50, gt=0)
    # Skip alerts already raised and not yet resolved for the same edge of drift.
    dedupe_open_alerts: bool = False


class PropagationResult(BaseModel):
    source_node_id: str
    total_affected: int = 0
    alerts_created: int = 0
    # Node ids reached at each depth (1-based).
    affected_by_depth: dict[int, list[str]] = Field(default_factory=dict)


class ChangePropagator:
    def __init__(self, repo: GraphRepository, config: PropagatorConfig | None = None):
        self.repo = repo
        self.config = config or PropagatorConfig()

    async def propagate(self, project_id: str, source_node_id: str) -> PropagationResult:
        source = await self.repo.find_node_by_id(source_node_id)
        if source is None or source.project_id != project_id:
            return PropagationResult(source_node_id=source_node_id)

        result = PropagationResult(source_node_id=source_node_id)
        visited: set[str] = {source.id}
        frontier: list[GraphNode] = [source]
        batch_size = self.config.batch_size

        for depth in range(1, self.config.max_depth + 1):
            next_frontier: list[GraphNode] = []
            reached = result.affected_by_depth.setdefault(depth, [])

            for start in range(0, len(frontier), batch_size):
                for current in frontier[start:start + batch_size]:
                    for edge in await self.repo.find_edges(project_id, source_node_id=current.id):
                        if edge.target_node_id in visited:
                            continue
                        visited.add(edge.target_node_id)

                        target = await self.repo.find_node_by_id(edge.target_node_id)
                        if target is None:
                            continue

                        drift_type = classify_drift(current.entity_type, target.entity_type, edge.edge_type)
                        if drift_type is not None and await self._should_alert(project_id, source, target, drift_type):
                            await self.repo.create_drift_alert(
                                project_id=project_id,
                                source_node_id=source.id,
                                target_node_id=target.id,
                                drift_type=drift_type,
                                description=describe_drift(source, target, drift_type, depth),
                                severity=severity_for_depth(depth),
                            )
                            result.alerts_created += 1

                        reached.append(target.id)
                        result.total_affected += 1
                        next_frontier.append(target)

            if not next_frontier:
                break
            frontier = next_frontier

        logger.info(
            "change_propagated",
            extra={
                "project_id": project_id,
                "source_node_id": source_node_id,
                "total_affected": result.total_affected,
                "alerts_created": result.alerts_created,
            },
        )
        return result

    async def propagate_batch(self, project_id: str, source_node_ids: list[str]) -> list[PropagationResult]:
        """Propagate from each root in turn. Alerts are not deduplicated across roots."""
        results = []
        for node_id in source_node_ids:
            results.append(await self.propagate(project_id, node_id))
        return results

    async def _should_alert(self, project_id: str, source: GraphNode, target: GraphNode, drift_type) -> bool:
        if not self.config.dedupe_open_alerts:
            return True
        return not await has_unresolved_alert(self.repo, project_id, source.id, target.id, drift_type)
