"""Knowledge graph consistency engine."""
from factorygraph.graph.alerts import AlertGenerator, AlertSummary, AlertType, StructuredAlert
from factorygraph.graph.classifier import classify_drift, severity_for_depth, severity_for_drift_type
from factorygraph.graph.drift_detector import DriftDetector, DriftDetectorConfig, DriftReport, DriftReportEntry
from factorygraph.graph.errors import (
    AlertNotFoundError,
    ConcurrentUpdateError,
    GraphError,
    InvalidAlertTransitionError,
    NodeNotFoundError,
)
from factorygraph.graph.propagator import ChangePropagator, PropagationResult, PropagatorConfig
from factorygraph.graph.repository import GraphRepository, SqlGraphRepository
from factorygraph.graph.service import GraphService, hash_content
from factorygraph.graph.types import (
    AffectedNode,
    NodeRef,
    PropagationEvent,
    RelatedNode,
    TraversalLayer,
    TraversalResult,
)

__all__ = [
    "AffectedNode",
    "AlertGenerator",
    "AlertNotFoundError",
    "AlertSummary",
    "AlertType",
    "ChangePropagator",
    "ConcurrentUpdateError",
    "DriftDetector",
    "DriftDetectorConfig",
    "DriftReport",
    "DriftReportEntry",
    "GraphError",
    "GraphRepository",
    "GraphService",
    "InvalidAlertTransitionError",
    "NodeNotFoundError",
    "NodeRef",
    "PropagationEvent",
    "PropagationResult",
    "PropagatorConfig",
    "RelatedNode",
    "SqlGraphRepository",
    "StructuredAlert",
    "TraversalLayer",
    "TraversalResult",
    "classify_drift",
    "hash_content",
    "severity_for_depth",
    "severity_for_drift_type",
]
