"""GitHub REST API client backed by ``requests``."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import requests  # type: ignore[import-untyped]

from weighted_approvals.github.base import GitHubError, PullRequestSource
from weighted_approvals.util.logging import get_logger

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_API_VERSION = "2022-11-28"
JSON_MEDIA_TYPE = "application/vnd.github+json"
DIFF_MEDIA_TYPE = "application/vnd.github.v3.diff"
PAGE_SIZE = 100
MAX_PAGES = 49


@dataclass(frozen=True)
class GitHubClientConfig:
    """Connection settings for the GitHub client."""

    token: str
    owner: str
    repo: str
    api_url: str
    timeout_s: float


class GitHubClient(PullRequestSource):
    """Pull-request source and team-membership oracle for one repository."""

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        *,
        api_url: str = DEFAULT_API_URL,
        timeout_s: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            token: Token with ``repo`` scope, plus ``read:org`` for team weights.
            owner: Repository owner.
            repo: Repository name.
            api_url: REST API root, overridable for GitHub Enterprise.
            timeout_s: Request timeout in seconds.
            session: Optional requests session for testing or reuse.
        """

        self._config = GitHubClientConfig(
            token=token,
            owner=owner,
            repo=repo,
            api_url=api_url.rstrip("/"),
            timeout_s=timeout_s,
        )
        self._session = session or requests.Session()
        self._logger = get_logger("weighted_approvals.github")

    @classmethod
    def from_repository(cls, token: str, repository: str, **kwargs: Any) -> GitHubClient:
        """Build a client from an ``owner/repo`` string."""

        owner, _, repo = repository.partition("/")
        if not owner or not repo:
            raise GitHubError(f"Repository must look like owner/repo, got {repository!r}.")
        return cls(token, owner, repo, **kwargs)

    def get_pull_request(self, pull_number: int) -> dict[str, Any]:
        data = self._request("GET", self._repo_url(f"/pulls/{pull_number}"))
        if not isinstance(data, dict):
            raise GitHubError("Unexpected pull request response.")
        return data

    def fetch_repo_file(self, path: str, ref: str) -> str:
        safe_path = "/".join(quote(segment, safe="") for segment in str(path).split("/"))
        params = {"ref": ref} if ref else None
        data = self._request("GET", self._repo_url(f"/contents/{safe_path}"), params=params)
        if not isinstance(data, dict) or data.get("type") != "file" or not isinstance(
            data.get("content"), str
        ):
            raise GitHubError(f"Unexpected contents response for {path}.")
        encoding = data.get("encoding") or "base64"
        if encoding != "base64":
            raise GitHubError(f"Unsupported content encoding {encoding!r} for {path}.")
        return base64.b64decode(data["content"]).decode("utf-8")

    def list_pull_files(self, pull_number: int) -> list[str]:
        files = self._paginate(self._repo_url(f"/pulls/{pull_number}/files"), "PR files")
        return [item["filename"] for item in files if isinstance(item, dict) and item.get("filename")]

    def list_pull_reviews(self, pull_number: int) -> list[dict[str, Any]]:
        return self._paginate(self._repo_url(f"/pulls/{pull_number}/reviews"), "PR reviews")

    def list_issue_comments(self, issue_number: int) -> list[dict[str, Any]]:
        return self._paginate(self._repo_url(f"/issues/{issue_number}/comments"), "issue comments")

    def get_pull_diff(self, pull_number: int) -> str:
        response = self._send("GET", self._repo_url(f"/pulls/{pull_number}"), accept=DIFF_MEDIA_TYPE)
        return response.text

    def list_check_runs(self, head_sha: str) -> list[dict[str, Any]]:
        data = self._request("GET", self._repo_url(f"/commits/{quote(head_sha, safe='')}/check-runs"))
        runs = data.get("check_runs") if isinstance(data, dict) else None
        return [run for run in runs if isinstance(run, dict)] if isinstance(runs, list) else []

    def create_check_run(
        self,
        *,
        name: str,
        head_sha: str,
        conclusion: str,
        output: dict[str, str],
    ) -> dict[str, Any]:
        payload = {
            "name": name,
            "head_sha": head_sha,
            "status": "completed",
            "conclusion": conclusion,
            "output": output,
        }
        return self._request("POST", self._repo_url("/check-runs"), payload=payload) or {}

    def update_check_run(
        self,
        *,
        check_run_id: int,
        conclusion: str,
        output: dict[str, str],
    ) -> dict[str, Any]:
        payload = {"status": "completed", "conclusion": conclusion, "output": output}
        return (
            self._request("PATCH", self._repo_url(f"/check-runs/{check_run_id}"), payload=payload)
            or {}
        )

    def is_user_in_team(self, team_key: str, login: str) -> bool:
        org, sep, slug = team_key.partition("/")
        if not sep:
            return False
        url = (
            f"{self._config.api_url}/orgs/{quote(org, safe='')}/teams/{quote(slug, safe='')}"
            f"/memberships/{quote(login, safe='')}"
        )
        response = self._send("GET", url, raise_for_status=False)
        if response.status_code == 404:
            return False
        if response.status_code == 403:
            raise GitHubError(
                f"Forbidden checking team membership for {org}/{slug}. Token likely lacks read:org.",
                status_code=403,
            )
        if response.status_code >= 400:
            raise GitHubError(
                f"Failed team membership check: {response.status_code} {response.text}",
                status_code=response.status_code,
            )
        data = _json_or_none(response)
        return isinstance(data, dict) and data.get("state") == "active"

    def _repo_url(self, path: str) -> str:
        return f"{self._config.api_url}/repos/{self._config.owner}/{self._config.repo}{path}"

    def _paginate(self, url: str, what: str) -> list[Any]:
        items: list[Any] = []
        for page in range(1, MAX_PAGES + 1):
            data = self._request("GET", url, params={"per_page": PAGE_SIZE, "page": page})
            if not isinstance(data, list):
                raise GitHubError(f"Unexpected {what} response.")
            items.extend(data)
            if len(data) < PAGE_SIZE:
                break
        return items

    def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        response = self._send(method, url, params=params, payload=payload)
        return _json_or_none(response)

    def _send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
        accept: str = JSON_MEDIA_TYPE,
        raise_for_status: bool = True,
    ) -> requests.Response:
        headers = {
            "Accept": accept,
            "Authorization": f"Bearer {self._config.token}",
            "X-GitHub-Api-Version": DEFAULT_API_VERSION,
        }
        self._logger.debug("%s %s params=%s", method, url, params)
        try:
            response = self._session.request(
                method,
                url,
                params=params,
                json=payload,
                headers=headers,
                timeout=self._config.timeout_s,
            )
        except requests.RequestException as exc:
            raise GitHubError(f"GitHub request failed: {method} {url}") from exc
        if raise_for_status and response.status_code >= 400:
            raise GitHubError(
                f"GitHub API {method} {url} failed with status {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        return response


def _json_or_none(response: requests.Response) -> Any:
    if not response.text:
        return None
    try:
        return response.json()
    except ValueError:
        return None
