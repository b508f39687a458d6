"""Drift classification and alert text templates.

The classifier is shared by every detection path (inline propagation, the
change propagator, the reconciliation scan). Combinations it does not know are
not errors: callers skip them.
"""

from __future__ import annotations

from factorygraph.storage.models import DriftSeverity, DriftType, GraphEdgeType, GraphEntityType, GraphNode


def classify_drift(
    source_type: GraphEntityType | str,
    target_type: GraphEntityType | str,
    edge_type: GraphEdgeType | str,
) -> DriftType | None:
    """Map an edge to the drift it implies. Order matters: first match wins."""
    source = GraphEntityType(source_type)
    target = GraphEntityType(target_type)
    edge = GraphEdgeType(edge_type)

    match (source, target, edge):
        case (GraphEntityType.codebase_file, _, GraphEdgeType.implements):
            return DriftType.code_drift
        case (GraphEntityType.document, GraphEntityType.document, GraphEdgeType.derives_from):
            return DriftType.requirements_drift
        case (_, _, GraphEdgeType.shared_context):
            return DriftType.foundation_drift
        case (GraphEntityType.document, GraphEntityType.work_order, GraphEdgeType.derives_from):
            return DriftType.work_order_drift
        case _:
            return None


SEVERITY_RANK = {DriftSeverity.low: 1, DriftSeverity.medium: 2, DriftSeverity.high: 3}


def severity_for_depth(depth: int) -> DriftSeverity:
    """Severity decays with hop distance from the changed node."""
    if depth <= 1:
        return DriftSeverity.high
    if depth == 2:
        return DriftSeverity.medium
    return DriftSeverity.low


def severity_for_drift_type(drift_type: DriftType) -> DriftSeverity:
    """Severity used by the reconciliation scan, where depth is unknown."""
    match drift_type:
        case DriftType.code_drift | DriftType.requirements_drift:
            return DriftSeverity.high
        case DriftType.foundation_drift | DriftType.work_order_drift:
            return DriftSeverity.medium


def describe_drift(source: GraphNode, target: GraphNode, drift_type: DriftType, depth: int | None = None) -> str:
    """Templated alert description; ``depth`` adds the hop distance."""
    if depth is None:
        templates = {
            DriftType.code_drift: f'Code in "{source.label}" has changed since blueprint "{target.label}" was last synced.',
            DriftType.requirements_drift: f'Requirement "{source.label}" was updated. Blueprint "{target.label}" may be outdated.',
            DriftType.foundation_drift: f'Foundation blueprint "{source.label}" changed. Feature blueprint "{target.label}" may need updates.',
            DriftType.work_order_drift: f'Blueprint "{source.label}" was updated. Work order "{target.label}" may need revision.',
        }
        return templates[drift_type]

    hop = "directly" if depth == 1 else f"{depth} hops away"
    templates = {
        DriftType.code_drift: f'Code changes in "{source.label}" may invalidate "{target.label}" ({hop}).',
        DriftType.requirements_drift: f'Requirement "{source.label}" updated; "{target.label}" may be stale ({hop}).',
        DriftType.foundation_drift: f'Foundation "{source.label}" changed; "{target.label}" may need updates ({hop}).',
        DriftType.work_order_drift: f'Blueprint "{source.label}" updated; work order "{target.label}" may need revision ({hop}).',
    }
    return templates[drift_type]


def suggest_action(source: GraphNode, target: GraphNode, drift_type: DriftType) -> str:
    actions = {
        DriftType.code_drift: f'Review blueprint "{target.label}" against the current code implementation and sync it.',
        DriftType.requirements_drift: f'Review blueprint "{target.label}" against updated requirement "{source.label}" and reconcile.',
        DriftType.foundation_drift: f'Check whether feature blueprint "{target.label}" needs updates after foundation changes in "{source.label}".',
        DriftType.work_order_drift: f'Review work order "{target.label}" against updated blueprint "{source.label}".',
    }
    return actions[drift_type]
