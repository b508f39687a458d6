"""SQLAlchemy models for the knowledge graph and its job queue."""

from datetime import datetime, timezone
from enum import Enum as PyEnum
from uuid import uuid4

from sqlalchemy import JSON, DateTime, Enum, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from factorygraph.db_base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


# ============================================================================
# Enums
# ============================================================================

class GraphEntityType(str, PyEnum):
    document = "document"
    work_order = "work_order"
    feature = "feature"
    feedback_item = "feedback_item"
    artifact = "artifact"
    codebase_file = "codebase_file"


class GraphEdgeType(str, PyEnum):
    derives_from = "derives_from"
    shared_context = "shared_context"
    implements = "implements"
    feedback_on = "feedback_on"
    parent_of = "parent_of"
    references = "references"
    blocks = "blocks"
    related_to = "related_to"


class DriftType(str, PyEnum):
    code_drift = "code_drift"
    requirements_drift = "requirements_drift"
    foundation_drift = "foundation_drift"
    work_order_drift = "work_order_drift"


class DriftSeverity(str, PyEnum):
    low = "low"
    medium = "medium"
    high = "high"


class DriftAlertStatus(str, PyEnum):
    open = "open"
    acknowledged = "acknowledged"
    resolved = "resolved"
    dismissed = "dismissed"


class GraphJobStatus(str, PyEnum):
    queued = "queued"
    running = "running"
    completed = "completed"
    failed = "failed"


# ============================================================================
# Models
# ============================================================================

class GraphNode(Base):
    """Graph-visible identity of one domain entity."""

    __tablename__ = "graph_nodes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    project_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    entity_type: Mapped[GraphEntityType] = mapped_column(Enum(GraphEntityType), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(255), nullable=False)
    label: Mapped[str] = mapped_column(Text, nullable=False)
    meta: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
    content_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("project_id", "entity_type", "entity_id", name="uq_graph_nodes_entity_identity"),
        Index("ix_graph_nodes_entity", "entity_type", "entity_id"),
    )


class GraphEdge(Base):
    """Directed, typed relationship between two nodes."""

    __tablename__ = "graph_edges"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    project_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    source_node_id: Mapped[str] = mapped_column(String(64), ForeignKey("graph_nodes.id", ondelete="CASCADE"), nullable=False, index=True)
    target_node_id: Mapped[str] = mapped_column(String(64), ForeignKey("graph_nodes.id", ondelete="CASCADE"), nullable=False, index=True)
    edge_type: Mapped[GraphEdgeType] = mapped_column(Enum(GraphEdgeType), nullable=False)
    meta: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("source_node_id", "target_node_id", "edge_type", name="uq_graph_edges_identity"),
    )


class DriftAlert(Base):
    """
    Flagged inconsistency between two nodes.

    Append/update only: rows are never deleted by the engine, and a status
    only moves toward resolved/dismissed.
    """

    __tablename__ = "drift_alerts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    project_id: Mapped[str] = mapped_column(String(64), nullable=False)
    source_node_id: Mapped[str] = mapped_column(String(64), ForeignKey("graph_nodes.id", ondelete="CASCADE"), nullable=False, index=True)
    target_node_id: Mapped[str | None] = mapped_column(String(64), ForeignKey("graph_nodes.id", ondelete="CASCADE"), nullable=True)
    drift_type: Mapped[DriftType] = mapped_column(Enum(DriftType), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[DriftSeverity] = mapped_column(Enum(DriftSeverity), nullable=False, default=DriftSeverity.medium)
    status: Mapped[DriftAlertStatus] = mapped_column(Enum(DriftAlertStatus), nullable=False, default=DriftAlertStatus.open)
    resolved_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_drift_alerts_project_status", "project_id", "status"),
        Index("ix_drift_alerts_identity", "source_node_id", "target_node_id", "drift_type"),
    )


class GraphJob(Base):
    """Persistent queue entry for graph and indexer background jobs."""

    __tablename__ = "graph_jobs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    queue_name: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    job_type: Mapped[str] = mapped_column(String(64), nullable=False)
    job_key: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    project_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    status: Mapped[GraphJobStatus] = mapped_column(Enum(GraphJobStatus), nullable=False, default=GraphJobStatus.queued, index=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    backoff_seconds: Mapped[float] = mapped_column(Float, nullable=False, default=5.0)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    result: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    next_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_graph_jobs_queue_status_next_run", "queue_name", "status", "next_run_at"),
    )
