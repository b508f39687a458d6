"""Job-scoped context utilities."""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from collections.abc import Iterator

_job_id: ContextVar[str | None] = ContextVar("job_id", default=None)


def get_job_id() -> str | None:
    """Return the id of the job being processed, if any."""
    return _job_id.get()


def set_job_id(job_id: str | None):
    """Set the job id for the current context and return the token."""
    return _job_id.set(job_id)


def reset_job_id(token) -> None:
    """Reset the job id to a previous context token."""
    _job_id.reset(token)


@contextmanager
def job_context(job_id: str) -> Iterator[None]:
    token = set_job_id(job_id)
    try:
        yield
    finally:
        reset_job_id(token)
