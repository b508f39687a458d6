"""Job dispatch for the graph drift queue."""

from __future__ import annotations

import logging

from factorygraph.config import Settings, get_settings
from factorygraph.graph.alerts import AlertGenerator
from factorygraph.graph.clock import Clock, utcnow
from factorygraph.graph.drift_detector import DriftDetector, DriftDetectorConfig
from factorygraph.graph.errors import NodeNotFoundError
from factorygraph.graph.propagator import ChangePropagator, PropagatorConfig
from factorygraph.graph.repository import GraphRepository
from factorygraph.graph.service import GraphService
from factorygraph.integrations.collaborators import FileContentReader, FileEntityResolver
from factorygraph.jobs.schemas import (
    CodeDriftCheckJob,
    FullScanJob,
    GraphJobEnvelope,
    GraphJobResult,
    PropagateChangeJob,
    graph_job_payload_adapter,
)
from factorygraph.storage.models import GraphEntityType

logger = logging.getLogger(__name__)


class UnsupportedJobTypeError(Exception):
    """Raised for a job type no handler is registered for."""


class GraphJobRunner:
    """Routes claimed graph jobs to their handlers."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        resolver: FileEntityResolver | None = None,
        reader: FileContentReader | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.settings = settings or get_settings()
        self.resolver = resolver
        self.reader = reader
        self._clock = clock

    async def run(self, repo: GraphRepository, job: GraphJobEnvelope) -> GraphJobResult:
        if job.job_type == "full_scan":
            payload = graph_job_payload_adapter.validate_python(job.payload)
            return await self._full_scan(repo, payload)
        if job.job_type == "propagate_change":
            payload = graph_job_payload_adapter.validate_python(job.payload)
            return await self._propagate_change(repo, payload)
        if job.job_type == "code_drift_check":
            payload = graph_job_payload_adapter.validate_python(job.payload)
            return await self._code_drift_check(repo, payload)

        raise UnsupportedJobTypeError(f"Unsupported job type: {job.job_type}")

    def _service(self, repo: GraphRepository) -> GraphService:
        return GraphService(
            repo,
            clock=self._clock,
            propagation_depth=self.settings.graph_propagation_depth,
            max_update_retries=self.settings.node_update_max_retries,
        )

    async def _full_scan(self, repo: GraphRepository, job: FullScanJob) -> GraphJobResult:
        detector = DriftDetector(
            repo,
            DriftDetectorConfig(staleness_threshold_seconds=self.settings.drift_staleness_threshold_seconds),
            clock=self._clock,
        )
        report = await detector.scan_project(job.project_id)
        alerts = await AlertGenerator(repo).create_alerts_from_report(report)
        return GraphJobResult(alerts_created=len(alerts), nodes_affected=len(report.entries))

    async def _propagate_change(self, repo: GraphRepository, job: PropagateChangeJob) -> GraphJobResult:
        return await self._propagate(repo, job.project_id, job.entity_type, job.entity_id, job.new_content)

    async def _propagate(
        self,
        repo: GraphRepository,
        project_id: str,
        entity_type: GraphEntityType,
        entity_id: str,
        new_content: str,
    ) -> GraphJobResult:
        event = await self._service(repo).propagate_change(project_id, entity_type, entity_id, new_content)
        result = GraphJobResult(alerts_created=len(event.alerts), nodes_affected=len(event.affected_nodes))
        if not event.content_changed:
            return result

        # Deeper pass past the inline depth; skips alerts the inline pass already raised.
        propagator = ChangePropagator(
            repo,
            PropagatorConfig(
                max_depth=self.settings.job_propagation_max_depth,
                batch_size=self.settings.propagator_batch_size,
                dedupe_open_alerts=True,
            ),
        )
        deep = await propagator.propagate(project_id, event.changed_node.id)
        result.alerts_created += deep.alerts_created
        result.nodes_affected += deep.total_affected
        return result

    async def _code_drift_check(self, repo: GraphRepository, job: CodeDriftCheckJob) -> GraphJobResult:
        result = GraphJobResult()
        for changed in job.changed_files:
            entity_id = await self._resolve_file(repo, job.project_id, job.connection_id, changed.path)
            if entity_id is None:
                logger.debug(
                    "code_drift_file_unresolved",
                    extra={"connection_id": job.connection_id, "path": changed.path},
                )
                continue

            content = changed.content
            if content is None:
                content = await self._read_file(job, changed.path)
                if content is None:
                    continue

            try:
                partial = await self._propagate(
                    repo, job.project_id, GraphEntityType.codebase_file, entity_id, content
                )
            except NodeNotFoundError:
                logger.warning(
                    "code_drift_file_node_missing",
                    extra={"project_id": job.project_id, "path": changed.path, "entity_id": entity_id},
                )
                continue
            result.alerts_created += partial.alerts_created
            result.nodes_affected += partial.nodes_affected
        return result

    async def _read_file(self, job: CodeDriftCheckJob, path: str) -> str | None:
        if self.reader is None or not job.owner or not job.repo:
            logger.warning(
                "code_drift_content_unavailable",
                extra={"connection_id": job.connection_id, "path": path, "has_reader": self.reader is not None},
            )
            return None

        content = await self.reader.get_file_content(job.connection_id, job.owner, job.repo, path, job.ref)
        if content is None:
            logger.info(
                "code_drift_file_not_in_repository",
                extra={"connection_id": job.connection_id, "path": path, "ref": job.ref},
            )
        return content

    async def _resolve_file(
        self,
        repo: GraphRepository,
        project_id: str,
        connection_id: str,
        path: str,
    ) -> str | None:
        if self.resolver is not None:
            return await self.resolver(connection_id, path)

        for node in await repo.list_nodes(project_id, GraphEntityType.codebase_file):
            meta = node.meta or {}
            if meta.get("connection_id") == connection_id and meta.get("path") == path:
                return node.entity_id
        return None
