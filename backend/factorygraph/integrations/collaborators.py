"""Interfaces of the services the graph engine consumes but does not own."""

from __future__ import annotations

from typing import Protocol


class FileContentReader(Protocol):
    async def get_file_content(
        self,
        connection_id: str,
        owner: str,
        repo: str,
        path: str,
        ref: str | None = None,
    ) -> str | None:
        """Return decoded file text, or None when the path is not a file."""
        ...


class FileEntityResolver(Protocol):
    async def __call__(self, connection_id: str, path: str) -> str | None:
        """Map a repository file to the entity id of its codebase_file node."""
        ...
