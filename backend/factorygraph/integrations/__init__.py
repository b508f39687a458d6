"""Adapters for services the graph engine consumes."""

from factorygraph.integrations.collaborators import FileContentReader, FileEntityResolver
from factorygraph.integrations.errors import GitHubApiError, IntegrationError
from factorygraph.integrations.github import GitHubAppTokenMinter, GitHubContentReader, build_content_reader
from factorygraph.integrations.token_cache import ExpiringStore, InstallationTokenCache

__all__ = [
    "FileContentReader",
    "FileEntityResolver",
    "GitHubApiError",
    "IntegrationError",
    "GitHubAppTokenMinter",
    "GitHubContentReader",
    "build_content_reader",
    "ExpiringStore",
    "InstallationTokenCache",
]
