"""GitHub collaborators: pull-request source and team-membership oracle."""

from weighted_approvals.github.base import GitHubError, PullRequestSource, TeamMembershipOracle
from weighted_approvals.github.client import GitHubClient

__all__ = [
    "GitHubClient",
    "GitHubError",
    "PullRequestSource",
    "TeamMembershipOracle",
]
