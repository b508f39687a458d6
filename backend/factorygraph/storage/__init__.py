"""Storage package init."""
from factorygraph.db_base import Base
from factorygraph.storage.database import get_engine, get_session_maker, init_db
from factorygraph.storage.models import (
    DriftAlert,
    DriftAlertStatus,
    DriftSeverity,
    DriftType,
    GraphEdge,
    GraphEdgeType,
    GraphEntityType,
    GraphJob,
    GraphJobStatus,
    GraphNode,
)

__all__ = [
    "Base",
    "get_engine",
    "get_session_maker",
    "init_db",
    "DriftAlert",
    "DriftAlertStatus",
    "DriftSeverity",
    "DriftType",
    "GraphEdge",
    "GraphEdgeType",
    "GraphEntityType",
    "GraphJob",
    "GraphJobStatus",
    "GraphNode",
]
