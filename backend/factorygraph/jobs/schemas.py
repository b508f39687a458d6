"""Graph job payload and envelope schemas."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from factorygraph.storage.models import GraphEntityType


class FileIndexStatus(str, Enum):
    """Per-file state owned by the external indexer."""

    PENDING = "PENDING"
    INDEXING = "INDEXING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"


class ConnectionIndexStatus(str, Enum):
    """Per-repository-connection state owned by the external indexer."""

    pending = "pending"
    indexing = "indexing"
    completed = "completed"
    failed = "failed"


class ChangedFile(BaseModel):
    path: str
    # None means "read it from the repository"
    content: str | None = None


class FullScanJob(BaseModel):
    type: Literal["full_scan"] = "full_scan"
    project_id: str


class PropagateChangeJob(BaseModel):
    type: Literal["propagate_change"] = "propagate_change"
    project_id: str
    entity_type: GraphEntityType
    entity_id: str
    new_content: str


class CodeDriftCheckJob(BaseModel):
    type: Literal["code_drift_check"] = "code_drift_check"
    project_id: str
    connection_id: str
    owner: str | None = None
    repo: str | None = None
    ref: str | None = None
    changed_files: list[ChangedFile] = Field(default_factory=list)


GraphJobPayload = Annotated[
    Union[FullScanJob, PropagateChangeJob, CodeDriftCheckJob],
    Field(discriminator="type"),
]

graph_job_payload_adapter: TypeAdapter[GraphJobPayload] = TypeAdapter(GraphJobPayload)


class GraphJobResult(BaseModel):
    alerts_created: int = 0
    nodes_affected: int = 0


class GraphJobEnvelope(BaseModel):
    """Claimed job handed from the queue to a handler."""

    job_id: str
    queue_name: str
    job_type: str
    job_key: str | None = None
    attempts: int
    max_attempts: int
    created_at: datetime
    payload: dict = Field(default_factory=dict)
