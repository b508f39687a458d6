"""Value types shared by the graph service, repository and traversal."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from factorygraph.storage.models import DriftAlert, GraphEdge, GraphEntityType, GraphNode

TraversalDirection = Literal["upstream", "downstream", "both"]


@dataclass(frozen=True)
class NodeRef:
    """Domain identity of a node, used to address endpoints of an edge."""

    entity_type: GraphEntityType
    entity_id: str


@dataclass
class TraversalLayer:
    """Nodes first reached at ``depth``; ``edges[i]`` is the edge that reached ``nodes[i]``."""

    depth: int
    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)


@dataclass
class TraversalResult:
    root_node: GraphNode
    layers: list[TraversalLayer] = field(default_factory=list)

    @property
    def node_count(self) -> int:
        return sum(len(layer.nodes) for layer in self.layers)


@dataclass(frozen=True)
class AffectedNode:
    node: GraphNode
    edge: GraphEdge
    depth: int


@dataclass
class PropagationEvent:
    """Outcome of ``GraphService.propagate_change``."""

    changed_node: GraphNode
    affected_nodes: list[AffectedNode] = field(default_factory=list)
    alerts: list[DriftAlert] = field(default_factory=list)
    content_changed: bool = False


@dataclass(frozen=True)
class RelatedNode:
    node: GraphNode
    edge: GraphEdge
    direction: Literal["source", "target"]
