"""Alert generation from drift reports and structured alert summaries."""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from factorygraph.graph.drift_detector import DriftReport, DriftReportEntry
from factorygraph.graph.repository import GraphRepository
from factorygraph.storage.models import DriftAlert, DriftAlertStatus, DriftSeverity, DriftType

logger = logging.getLogger(__name__)

# Statuses that block a new alert for the same (source, target, drift type).
UNRESOLVED_STATUSES = (DriftAlertStatus.open, DriftAlertStatus.acknowledged)

ALLOWED_TRANSITIONS: dict[DriftAlertStatus, frozenset[DriftAlertStatus]] = {
    DriftAlertStatus.open: frozenset(
        {DriftAlertStatus.acknowledged, DriftAlertStatus.resolved, DriftAlertStatus.dismissed}
    ),
    DriftAlertStatus.acknowledged: frozenset({DriftAlertStatus.resolved, DriftAlertStatus.dismissed}),
    DriftAlertStatus.resolved: frozenset(),
    DriftAlertStatus.dismissed: frozenset(),
}


def can_transition(current: DriftAlertStatus, new: DriftAlertStatus) -> bool:
    return DriftAlertStatus(new) in ALLOWED_TRANSITIONS[DriftAlertStatus(current)]


async def has_unresolved_alert(
    repo: GraphRepository,
    project_id: str,
    source_node_id: str,
    target_node_id: str | None,
    drift_type: DriftType,
) -> bool:
    existing = await repo.list_drift_alerts(
        project_id,
        status=UNRESOLVED_STATUSES,
        drift_type=drift_type,
        source_node_id=source_node_id,
        target_node_id=target_node_id,
        limit=1,
    )
    return bool(existing)


class AlertType(str, Enum):
    BLUEPRINT_STALE = "BLUEPRINT_STALE"
    WORK_ORDER_OUTDATED = "WORK_ORDER_OUTDATED"
    REQUIREMENT_CHANGED = "REQUIREMENT_CHANGED"
    FOUNDATION_CONFLICT = "FOUNDATION_CONFLICT"


ALERT_TYPE_BY_DRIFT = {
    DriftType.code_drift: AlertType.BLUEPRINT_STALE,
    DriftType.work_order_drift: AlertType.WORK_ORDER_OUTDATED,
    DriftType.requirements_drift: AlertType.REQUIREMENT_CHANGED,
    DriftType.foundation_drift: AlertType.FOUNDATION_CONFLICT,
}

SUGGESTED_ACTIONS = {
    AlertType.BLUEPRINT_STALE: "Run the drift resolution workflow to sync the blueprint with the current code.",
    AlertType.WORK_ORDER_OUTDATED: "Run the planner sync workflow to update work orders against the latest blueprint.",
    AlertType.REQUIREMENT_CHANGED: "Review and reconcile the blueprint with the updated requirements.",
    AlertType.FOUNDATION_CONFLICT: "Review the foundation blueprint changes and check all linked feature blueprints for consistency.",
}


class StructuredAlert(BaseModel):
    """Open alert shaped for the agent panel."""

    alert_id: str
    alert_type: AlertType
    affected_node_id: str
    source_node_id: str
    drift_type: DriftType
    severity: DriftSeverity
    description: str
    suggested_action: str
    created_at: datetime


class AlertSummary(BaseModel):
    project_id: str
    total_alerts: int = 0
    by_severity: dict[DriftSeverity, int] = Field(
        default_factory=lambda: {severity: 0 for severity in DriftSeverity}
    )
    by_type: dict[AlertType, int] = Field(default_factory=lambda: {alert_type: 0 for alert_type in AlertType})
    alerts: list[StructuredAlert] = Field(default_factory=list)


class AlertGenerator:
    """Persists drift report entries as alerts.

    Deduplication: an entry is skipped while an open or acknowledged alert for
    the same (source node, target node, drift type) exists. Once that alert is
    resolved or dismissed, a later scan raises a fresh one.
    """

    def __init__(self, repo: GraphRepository):
        self.repo = repo

    async def create_alerts_from_report(self, report: DriftReport) -> list[DriftAlert]:
        alerts: list[DriftAlert] = []
        skipped = 0

        for entry in report.entries:
            if await self._has_unresolved_alert(report.project_id, entry):
                skipped += 1
                continue
            alerts.append(await self.create_alert_from_entry(report.project_id, entry))

        logger.info(
            "drift_alerts_generated",
            extra={
                "project_id": report.project_id,
                "entries": len(report.entries),
                "alerts_created": len(alerts),
                "duplicates_skipped": skipped,
            },
        )
        return alerts

    async def create_alert_from_entry(self, project_id: str, entry: DriftReportEntry) -> DriftAlert:
        """Persist one entry without deduplication (incremental use)."""
        return await self.repo.create_drift_alert(
            project_id=project_id,
            source_node_id=entry.source_node_id,
            target_node_id=entry.target_node_id,
            drift_type=entry.drift_type,
            description=entry.description,
            severity=entry.severity,
            status=DriftAlertStatus.open,
        )

    async def get_alert_summary(self, project_id: str) -> AlertSummary:
        summary = AlertSummary(project_id=project_id)
        for alert in await self.repo.list_drift_alerts(project_id, status=DriftAlertStatus.open):
            alert_type = ALERT_TYPE_BY_DRIFT[DriftType(alert.drift_type)]
            severity = DriftSeverity(alert.severity)
            summary.by_severity[severity] += 1
            summary.by_type[alert_type] += 1
            summary.alerts.append(
                StructuredAlert(
                    alert_id=alert.id,
                    alert_type=alert_type,
                    affected_node_id=alert.target_node_id or alert.source_node_id,
                    source_node_id=alert.source_node_id,
                    drift_type=alert.drift_type,
                    severity=severity,
                    description=alert.description,
                    suggested_action=SUGGESTED_ACTIONS[alert_type],
                    created_at=alert.created_at,
                )
            )
        summary.total_alerts = len(summary.alerts)
        return summary

    async def _has_unresolved_alert(self, project_id: str, entry: DriftReportEntry) -> bool:
        return await has_unresolved_alert(
            self.repo, project_id, entry.source_node_id, entry.target_node_id, entry.drift_type
        )
