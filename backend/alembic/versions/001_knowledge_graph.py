"""knowledge_graph

Revision ID: 001_knowledge_graph
Revises:
Create Date: 2026-10-18

Add graph_nodes, graph_edges, drift_alerts and graph_jobs tables.
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "001_knowledge_graph"
down_revision = None
branch_labels = None
depends_on = None


entity_type_enum = sa.Enum(
    "document", "work_order", "feature", "feedback_item", "artifact", "codebase_file",
    name="graphentitytype",
)
edge_type_enum = sa.Enum(
    "derives_from", "shared_context", "implements", "feedback_on",
    "parent_of", "references", "blocks", "related_to",
    name="graphedgetype",
)
drift_type_enum = sa.Enum(
    "code_drift", "requirements_drift", "foundation_drift", "work_order_drift",
    name="drifttype",
)
drift_severity_enum = sa.Enum("low", "medium", "high", name="driftseverity")
drift_status_enum = sa.Enum("open", "acknowledged", "resolved", "dismissed", name="driftalertstatus")
job_status_enum = sa.Enum("queued", "running", "completed", "failed", name="graphjobstatus")


def upgrade():
    op.create_table(
        "graph_nodes",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("project_id", sa.String(length=64), nullable=False),
        sa.Column("entity_type", entity_type_enum, nullable=False),
        sa.Column("entity_id", sa.String(length=255), nullable=False),
        sa.Column("label", sa.Text(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False, server_default=sa.text("'{}'::json")),
        sa.Column("content_hash", sa.String(length=64), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("project_id", "entity_type", "entity_id", name="uq_graph_nodes_entity_identity"),
    )
    op.create_index("ix_graph_nodes_project_id", "graph_nodes", ["project_id"])
    op.create_index("ix_graph_nodes_entity", "graph_nodes", ["entity_type", "entity_id"])

    op.create_table(
        "graph_edges",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("project_id", sa.String(length=64), nullable=False),
        sa.Column("source_node_id", sa.String(length=64), nullable=False),
        sa.Column("target_node_id", sa.String(length=64), nullable=False),
        sa.Column("edge_type", edge_type_enum, nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False, server_default=sa.text("'{}'::json")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["source_node_id"], ["graph_nodes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["target_node_id"], ["graph_nodes.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("source_node_id", "target_node_id", "edge_type", name="uq_graph_edges_identity"),
    )
    op.create_index("ix_graph_edges_project_id", "graph_edges", ["project_id"])
    op.create_index("ix_graph_edges_source_node_id", "graph_edges", ["source_node_id"])
    op.create_index("ix_graph_edges_target_node_id", "graph_edges", ["target_node_id"])

    op.create_table(
        "drift_alerts",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("project_id", sa.String(length=64), nullable=False),
        sa.Column("source_node_id", sa.String(length=64), nullable=False),
        sa.Column("target_node_id", sa.String(length=64), nullable=True),
        sa.Column("drift_type", drift_type_enum, nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("severity", drift_severity_enum, nullable=False, server_default="medium"),
        sa.Column("status", drift_status_enum, nullable=False, server_default="open"),
        sa.Column("resolved_by", sa.String(length=64), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["source_node_id"], ["graph_nodes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["target_node_id"], ["graph_nodes.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_drift_alerts_source_node_id", "drift_alerts", ["source_node_id"])
    op.create_index("ix_drift_alerts_created_at", "drift_alerts", ["created_at"])
    op.create_index("ix_drift_alerts_project_status", "drift_alerts", ["project_id", "status"])
    op.create_index("ix_drift_alerts_identity", "drift_alerts", ["source_node_id", "target_node_id", "drift_type"])

    op.create_table(
        "graph_jobs",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("queue_name", sa.String(length=64), nullable=False),
        sa.Column("job_type", sa.String(length=64), nullable=False),
        sa.Column("job_key", sa.String(length=255), nullable=True),
        sa.Column("project_id", sa.String(length=64), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", job_status_enum, nullable=False, server_default="queued"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("backoff_seconds", sa.Float(), nullable=False, server_default="5"),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("result", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_graph_jobs_queue_name", "graph_jobs", ["queue_name"])
    op.create_index("ix_graph_jobs_job_key", "graph_jobs", ["job_key"])
    op.create_index("ix_graph_jobs_project_id", "graph_jobs", ["project_id"])
    op.create_index("ix_graph_jobs_status", "graph_jobs", ["status"])
    op.create_index("ix_graph_jobs_created_at", "graph_jobs", ["created_at"])
    op.create_index("ix_graph_jobs_queue_status_next_run", "graph_jobs", ["queue_name", "status", "next_run_at"])


def downgrade():
    op.drop_index("ix_graph_jobs_queue_status_next_run", table_name="graph_jobs")
    op.drop_index("ix_graph_jobs_created_at", table_name="graph_jobs")
    op.drop_index("ix_graph_jobs_status", table_name="graph_jobs")
    op.drop_index("ix_graph_jobs_project_id", table_name="graph_jobs")
    op.drop_index("ix_graph_jobs_job_key", table_name="graph_jobs")
    op.drop_index("ix_graph_jobs_queue_name", table_name="graph_jobs")
    op.drop_table("graph_jobs")

    op.drop_index("ix_drift_alerts_identity", table_name="drift_alerts")
    op.drop_index("ix_drift_alerts_project_status", table_name="drift_alerts")
    op.drop_index("ix_drift_alerts_created_at", table_name="drift_alerts")
    op.drop_index("ix_drift_alerts_source_node_id", table_name="drift_alerts")
    op.drop_table("drift_alerts")

    op.drop_index("ix_graph_edges_target_node_id", table_name="graph_edges")
    op.drop_index("ix_graph_edges_source_node_id", table_name="graph_edges")
    op.drop_index("ix_graph_edges_project_id", table_name="graph_edges")
    op.drop_table("graph_edges")

    op.drop_index("ix_graph_nodes_entity", table_name="graph_nodes")
    op.drop_index("ix_graph_nodes_project_id", table_name="graph_nodes")
    op.drop_table("graph_nodes")

    bind = op.get_bind()
    for enum in (
        job_status_enum,
        drift_status_enum,
        drift_severity_enum,
        drift_type_enum,
        edge_type_enum,
        entity_type_enum,
    ):
        enum.drop(bind, checkfirst=True)
