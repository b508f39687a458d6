"""Errors raised by external service integrations."""


class IntegrationError(Exception):
    """Base class for integration failures."""


class GitHubApiError(IntegrationError):
    """Non-success response from the GitHub REST API."""

    def __init__(self, status_code: int, body: str, message: str | None = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message or f"GitHub API error ({status_code}): {body}")
