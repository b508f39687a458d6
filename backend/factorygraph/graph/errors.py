"""Typed errors for graph and drift alert operations."""


class GraphError(Exception):
    """Base class for knowledge graph errors."""


class NodeNotFoundError(GraphError):
    """Raised when a node cannot be resolved by identity or id."""

    def __init__(self, entity_type: str | None = None, entity_id: str | None = None, *, node_id: str | None = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.node_id = node_id
        if node_id is not None:
            message = f"Node not found: {node_id}"
        else:
            message = f"Node not found: {entity_type}:{entity_id}"
        super().__init__(message)


class ConcurrentUpdateError(GraphError):
    """Raised when a node keeps changing underneath a compare-and-swap update."""


class AlertNotFoundError(GraphError):
    """Raised when a drift alert id does not exist."""


class InvalidAlertTransitionError(GraphError):
    """Raised when a drift alert status change would move backwards."""
