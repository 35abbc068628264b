"""
GitHub client for release pull requests.

A release is requested by opening a pull request from a fresh branch that
holds a single empty commit on top of the base branch, labelled with the
release level. Downstream automation in the target repository bumps the
version when the pull request is merged.

The branch name is derived from the chat message the workflow lives in, so
a second confirmation of the same workflow hits "Reference already exists"
instead of opening a duplicate pull request.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from .errors import ReferenceAlreadyExists, RemoteCallFailure

logger = logging.getLogger("stagebot.github")

GITHUB_API_BASE = "https://api.github.com"
API_TIMEOUT_DEFAULT = 10.0
RELEASE_LABEL_PREFIX = "release/"


@dataclass(frozen=True)
class PullRequest:
    number: int
    url: str


def _ref_safe(value: str) -> str:
    return "".join(c if c.isalnum() else "-" for c in value)


def release_branch_name(level: str, channel_id: str, message_ts: str) -> str:
    # message ids are only unique within one chat
    return f"stagebot/release-{level}-{_ref_safe(channel_id)}-{_ref_safe(message_ts)}"


class GitHubClient:
    """Minimal GitHub REST client (git data + pulls + labels)."""

    def __init__(
        self,
        token: str,
        api_url: str = GITHUB_API_BASE,
        timeout: float = API_TIMEOUT_DEFAULT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.headers = {
            "Authorization": f"token {token}",
            "Accept": "application/vnd.github.v3+json",
        }
        self._transport = transport

    async def _request(
        self,
        client: httpx.AsyncClient,
        operation: str,
        method: str,
        endpoint: str,
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        try:
            response = await client.request(method, endpoint, json=data, params=params)
        except httpx.HTTPError as e:
            raise RemoteCallFailure(operation, f"{type(e).__name__}: {e}") from e

        if response.status_code >= 400:
            detail = response.text[:200]
            if response.status_code == 422 and "Reference already exists" in response.text:
                raise ReferenceAlreadyExists(operation, detail)
            raise RemoteCallFailure(operation, f"HTTP {response.status_code}: {detail}")

        try:
            return response.json()
        except ValueError as e:
            raise RemoteCallFailure(operation, f"invalid JSON response: {e}") from e

    async def create_release_pull_request(
        self,
        owner: str,
        repo: str,
        base_branch: str,
        level: str,
        branch: str,
        requested_by: str = "",
    ) -> PullRequest:
        """
        Open a release pull request.

        Raises:
            ReferenceAlreadyExists: the release branch was already created
            RemoteCallFailure: any other API failure
        """
        prefix = f"/repos/{owner}/{repo}"
        async with httpx.AsyncClient(base_url=self.api_url, headers=self.headers,
                                     timeout=self.timeout, transport=self._transport) as client:
            try:
                base = await self._request(client, "GetBaseRef", "GET",
                                           f"{prefix}/git/ref/heads/{base_branch}")
                base_sha = base["object"]["sha"]
                base_commit = await self._request(client, "GetBaseCommit", "GET",
                                                  f"{prefix}/git/commits/{base_sha}")
                tree_sha = base_commit["tree"]["sha"]

                commit = await self._request(client, "CreateCommit", "POST", f"{prefix}/git/commits", {
                    "message": f"Release ({level})",
                    "tree": tree_sha,
                    "parents": [base_sha],
                })
                await self._request(client, "CreateRef", "POST", f"{prefix}/git/refs", {
                    "ref": f"refs/heads/{branch}",
                    "sha": commit["sha"],
                })
                logger.info(f"Created branch {branch} on {owner}/{repo}")

                body = "Release requested from chat"
                if requested_by:
                    body += f" by {requested_by}"
                pull = await self._request(client, "CreatePullRequest", "POST", f"{prefix}/pulls", {
                    "title": f"Release ({level})",
                    "head": branch,
                    "base": base_branch,
                    "body": body + ".",
                })
                number = int(pull["number"])
                await self._request(client, "AddLabels", "POST",
                                    f"{prefix}/issues/{number}/labels",
                                    {"labels": [f"{RELEASE_LABEL_PREFIX}{level}"]})
                return PullRequest(number=number, url=str(pull["html_url"]))
            except (KeyError, TypeError, ValueError) as e:
                raise RemoteCallFailure("CreateReleasePullRequest",
                                        f"unexpected response shape: {e}") from e

    async def find_pull_request(self, owner: str, repo: str, branch: str) -> Optional[PullRequest]:
        """The pull request opened from ``branch``, if any (open or closed)."""
        async with httpx.AsyncClient(base_url=self.api_url, headers=self.headers,
                                     timeout=self.timeout, transport=self._transport) as client:
            pulls = await self._request(client, "FindPullRequest", "GET",
                                        f"/repos/{owner}/{repo}/pulls",
                                        params={"head": f"{owner}:{branch}", "state": "all"})
        try:
            if not pulls:
                return None
            return PullRequest(number=int(pulls[0]["number"]), url=str(pulls[0]["html_url"]))
        except (KeyError, TypeError, ValueError) as e:
            raise RemoteCallFailure("FindPullRequest", f"unexpected response shape: {e}") from e
