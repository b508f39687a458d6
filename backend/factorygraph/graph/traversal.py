"""Layered breadth-first traversal over a graph repository."""

from __future__ import annotations

from typing import TYPE_CHECKING

from factorygraph.graph.types import TraversalDirection, TraversalLayer, TraversalResult
from factorygraph.storage.models import GraphEdge, GraphNode

if TYPE_CHECKING:
    from factorygraph.graph.repository import GraphRepository


async def _neighbors(
    repo: GraphRepository,
    node: GraphNode,
    direction: TraversalDirection,
) -> list[tuple[GraphEdge, str]]:
    pairs: list[tuple[GraphEdge, str]] = []
    if direction in ("downstream", "both"):
        for edge in await repo.find_edges(node.project_id, source_node_id=node.id):
            pairs.append((edge, edge.target_node_id))
    if direction in ("upstream", "both"):
        for edge in await repo.find_edges(node.project_id, target_node_id=node.id):
            pairs.append((edge, edge.source_node_id))
    return pairs


async def breadth_first(
    repo: GraphRepository,
    root: GraphNode,
    direction: TraversalDirection,
    max_depth: int,
) -> TraversalResult:
    """Walk up to ``max_depth`` hops from ``root``.

    One visited set spans the whole walk, so every node appears at most once
    (at its shallowest depth) even when edges form cycles. Nodes deleted while
    the walk is in progress are skipped.
    """
    visited: set[str] = {root.id}
    result = TraversalResult(root_node=root)
    frontier = [root]

    for depth in range(1, max_depth + 1):
        if not frontier:
            break
        layer = TraversalLayer(depth=depth)
        next_frontier: list[GraphNode] = []

        for node in frontier:
            for edge, neighbor_id in await _neighbors(repo, node, direction):
                if neighbor_id in visited:
                    continue
                visited.add(neighbor_id)
                neighbor = await repo.find_node_by_id(neighbor_id)
                if neighbor is None:
                    continue
                layer.nodes.append(neighbor)
                layer.edges.append(edge)
                next_frontier.append(neighbor)

        if layer.nodes:
            result.layers.append(layer)
        frontier = next_frontier

    return result
