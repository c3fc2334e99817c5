"""Abstract interfaces for the GitHub collaborators."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class GitHubError(RuntimeError):
    """Raised when a GitHub API call fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TeamMembershipOracle(ABC):
    """Answers whether a login is an active member of a team."""

    @abstractmethod
    def is_user_in_team(self, team_key: str, login: str) -> bool:
        """Return True if ``login`` is an active member of ``org/slug``.

        Raises:
            GitHubError: If membership cannot be determined.
        """


class PullRequestSource(TeamMembershipOracle):
    """Fetches pull-request facts and publishes the check run."""

    @abstractmethod
    def get_pull_request(self, pull_number: int) -> dict[str, Any]:
        """Return the pull-request payload."""

    @abstractmethod
    def fetch_repo_file(self, path: str, ref: str) -> str:
        """Return the decoded text of a repository file at ``ref``."""

    @abstractmethod
    def list_pull_files(self, pull_number: int) -> list[str]:
        """Return the repository-relative paths changed by the pull request."""

    @abstractmethod
    def list_pull_reviews(self, pull_number: int) -> list[dict[str, Any]]:
        """Return every review submitted on the pull request."""

    @abstractmethod
    def list_issue_comments(self, issue_number: int) -> list[dict[str, Any]]:
        """Return every conversation comment on the pull request."""

    @abstractmethod
    def get_pull_diff(self, pull_number: int) -> str:
        """Return the unified diff of the pull request."""

    @abstractmethod
    def list_check_runs(self, head_sha: str) -> list[dict[str, Any]]:
        """Return check runs attached to a commit."""

    @abstractmethod
    def create_check_run(
        self,
        *,
        name: str,
        head_sha: str,
        conclusion: str,
        output: dict[str, str],
    ) -> dict[str, Any]:
        """Create a completed check run."""

    @abstractmethod
    def update_check_run(
        self,
        *,
        check_run_id: int,
        conclusion: str,
        output: dict[str, str],
    ) -> dict[str, Any]:
        """Complete an existing check run with a new conclusion."""
