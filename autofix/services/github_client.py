"""
GitHub Client
=============
Async wrapper around the GitHub REST and GraphQL APIs used by the daemon.

Operations:
    - list_repo_bot_comments  : repo-level review comments by the bot, grouped by PR
    - get_pull_request        : PR details, None when closed or inaccessible
    - get_resolved_comment_ids : first comment id of every resolved review thread
    - list_owner_repos        : repos of an org (falls back to a user account)
    - create_issue_comment    : post a comment on a PR conversation

Authentication:
    GH_TOKEN environment variable, or the token of an authenticated gh CLI.
"""
import logging
import os
import re
import subprocess
from typing import Dict, List, Optional, Set

import httpx

from autofix.core.constants import DEFAULT_BOT_LOGIN
from autofix.core.exceptions import ConfigError
from autofix.models.pull_request import PullRequest
from autofix.models.review_comment import ReviewComment

logger = logging.getLogger(__name__)

API_URL = "https://api.github.com"

VALID_TOKEN_PREFIXES = ("ghp_", "gho_", "ghu_", "ghs_", "ghr_", "github_pat_")

# Status codes meaning "this PR is gone for us" rather than a transient fault.
# 403 only counts when it is not a rate limit (see is_rate_limited).
_INACCESSIBLE_STATUSES = {403, 404, 410}


def is_rate_limited(response: httpx.Response) -> bool:
    """GitHub signals primary and secondary rate limits with 403/429 plus these headers."""
    if response.status_code not in (403, 429):
        return False
    return (
        response.headers.get("x-ratelimit-remaining") == "0"
        or "retry-after" in response.headers
    )

_PR_NUMBER_RE = re.compile(r"/pulls/(\d+)$")

RESOLVED_THREADS_QUERY = """
query($owner: String!, $name: String!, $number: Int!, $after: String) {
  repository(owner: $owner, name: $name) {
    pullRequest(number: $number) {
      reviewThreads(first: 100, after: $after) {
        pageInfo {
          hasNextPage
          endCursor
        }
        nodes {
          isResolved
          comments(first: 1) {
            nodes {
              databaseId
            }
          }
        }
      }
    }
  }
}
"""


def validate_github_token(token: str) -> None:
    if not token.startswith(VALID_TOKEN_PREFIXES):
        raise ConfigError(
            "Invalid GH_TOKEN format. GitHub tokens should start with one of: "
            + ", ".join(VALID_TOKEN_PREFIXES)
        )


def extract_pr_number(pull_request_url: str) -> Optional[int]:
    """Extract the PR number from a comment's pull_request_url."""
    match = _PR_NUMBER_RE.search(pull_request_url or "")
    return int(match.group(1)) if match else None


def resolve_github_token() -> str:
    """Return GH_TOKEN if set, otherwise ask the gh CLI."""
    env_token = os.getenv("GH_TOKEN", "").strip()
    if env_token:
        validate_github_token(env_token)
        logger.info("GitHub client authenticated via GH_TOKEN environment variable.")
        return env_token

    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            check=True,
            capture_output=True,
            text=True,
            timeout=30,
        )
    except (OSError, subprocess.SubprocessError) as e:
        raise ConfigError(
            "Failed to get GitHub token. Set GH_TOKEN environment variable "
            f"or run 'gh auth login'. Error: {e}"
        )

    token = result.stdout.strip()
    if not token:
        raise ConfigError("gh auth token returned an empty string.")
    logger.info("GitHub client authenticated via gh CLI.")
    return token


def _to_pull_request(owner: str, repo: str, data: dict) -> PullRequest:
    return PullRequest(
        owner=owner,
        repo=repo,
        number=data["number"],
        title=data.get("title") or "",
        head_ref=data["head"]["ref"],
        base_ref=data["base"]["ref"],
        head_sha=data["head"]["sha"],
        html_url=data.get("html_url") or "",
    )


class GitHubClient:
    """
    Remote scanner over the GitHub API.

    Parameters
    ----------
    token : str
        GitHub token used for every request.
    bot_login : str
        Only comments authored by this login are returned.
    client : httpx.AsyncClient or None
        Injected client (tests pass one backed by httpx.MockTransport).
    """

    def __init__(
        self,
        token: str = "",
        bot_login: str = DEFAULT_BOT_LOGIN,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.bot_login = bot_login
        self.token = token
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "Bugbot-Autofix",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.AsyncClient(
            base_url=API_URL, headers=headers, timeout=30.0
        )

    @classmethod
    def from_environment(cls, bot_login: str = DEFAULT_BOT_LOGIN) -> "GitHubClient":
        return cls(token=resolve_github_token(), bot_login=bot_login)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get_paginated(self, url: str, params: Optional[dict] = None) -> List[dict]:
        """Follow Link rel=next headers and return the concatenated items."""
        items: List[dict] = []
        next_url: Optional[str] = url
        while next_url:
            response = await self._client.get(next_url, params=params)
            response.raise_for_status()
            items.extend(response.json())
            next_url = response.links.get("next", {}).get("url")
            # The next link already carries the query string
            params = None
        return items

    # -------------------------------------------------------------------
    # Review comments
    # -------------------------------------------------------------------
    async def list_repo_bot_comments(
        self, owner: str, repo: str, since: Optional[str] = None
    ) -> Dict[int, List[ReviewComment]]:
        """
        Fetch every review comment in the repo authored by the bot, newest
        first, grouped by PR number. One paginated call per repository.
        """
        logger.debug(
            "Fetching repo-level bot review comments.",
            extra={"context": {"repo": f"{owner}/{repo}", "since": since or "(all)"}},
        )

        params = {"sort": "created", "direction": "desc", "per_page": 100}
        if since:
            params["since"] = since

        raw_comments = await self._get_paginated(f"/repos/{owner}/{repo}/pulls/comments", params)

        comments_by_pr: Dict[int, List[ReviewComment]] = {}
        for raw in raw_comments:
            login = (raw.get("user") or {}).get("login", "")
            if login != self.bot_login:
                continue
            pr_number = extract_pr_number(raw.get("pull_request_url", ""))
            if not pr_number:
                continue

            comments_by_pr.setdefault(pr_number, []).append(ReviewComment(
                id=raw["id"],
                body=raw.get("body") or "",
                path=raw.get("path") or "",
                line=raw.get("line"),
                original_line=raw.get("original_line"),
                commit_id=raw.get("commit_id") or "",
                user_login=login,
                pull_request_review_id=raw.get("pull_request_review_id") or 0,
                created_at=raw.get("created_at") or "",
            ))

        if comments_by_pr:
            logger.debug(
                "Found bot comments on %d PR(s) in %s/%s.", len(comments_by_pr), owner, repo
            )
        return comments_by_pr

    # -------------------------------------------------------------------
    # Pull requests
    # -------------------------------------------------------------------
    async def get_pull_request(self, owner: str, repo: str, number: int) -> Optional[PullRequest]:
        """Return the PR if it is open, None if closed, merged or inaccessible."""
        logger.debug(
            "Fetching PR details.",
            extra={"context": {"repo": f"{owner}/{repo}", "pr": number}},
        )
        response = await self._client.get(f"/repos/{owner}/{repo}/pulls/{number}")
        if is_rate_limited(response):
            logger.warning(
                "Rate limited while fetching PR #%d in %s/%s.", number, owner, repo,
                extra={"context": {"retry_after": response.headers.get("retry-after", "")}},
            )
            response.raise_for_status()
        if response.status_code in _INACCESSIBLE_STATUSES:
            logger.debug("PR #%d in %s/%s is inaccessible (HTTP %d).",
                         number, owner, repo, response.status_code)
            return None
        response.raise_for_status()

        data = response.json()
        if data.get("state") != "open":
            logger.debug("PR #%d in %s/%s is %s, skipping.", number, owner, repo, data.get("state"))
            return None
        return _to_pull_request(owner, repo, data)

    # -------------------------------------------------------------------
    # Resolved review threads (GraphQL)
    # -------------------------------------------------------------------
    async def get_resolved_comment_ids(self, owner: str, repo: str, number: int) -> Set[int]:
        """Collect the originating comment id of every resolved review thread."""
        logger.debug(
            "Fetching resolved review threads via GraphQL.",
            extra={"context": {"repo": f"{owner}/{repo}", "pr": number}},
        )

        resolved: Set[int] = set()
        cursor: Optional[str] = None
        while True:
            response = await self._client.post("/graphql", json={
                "query": RESOLVED_THREADS_QUERY,
                "variables": {"owner": owner, "name": repo, "number": number, "after": cursor},
            })
            response.raise_for_status()
            payload = response.json()
            if payload.get("errors"):
                message = payload["errors"][0].get("message", "unknown error")
                raise RuntimeError(f"GraphQL returned {len(payload['errors'])} error(s): {message}")

            threads = payload["data"]["repository"]["pullRequest"]["reviewThreads"]
            for thread in threads["nodes"]:
                first = thread["comments"]["nodes"]
                if thread["isResolved"] and first:
                    resolved.add(first[0]["databaseId"])

            if not threads["pageInfo"]["hasNextPage"]:
                break
            cursor = threads["pageInfo"]["endCursor"]

        if resolved:
            logger.debug(
                "Found %d resolved review thread(s).",
                len(resolved),
                extra={"context": {"repo": f"{owner}/{repo}", "pr": number}},
            )
        return resolved

    # -------------------------------------------------------------------
    # Repositories
    # -------------------------------------------------------------------
    async def list_owner_repos(self, owner: str) -> List[Dict[str, str]]:
        """List repos for an org, or for a user account if the org listing fails."""
        logger.debug("Listing repos for owner.", extra={"context": {"owner": owner}})

        try:
            data = await self._get_paginated(
                f"/orgs/{owner}/repos", {"per_page": 100, "type": "all"}
            )
            repos = [{"owner": owner, "name": r["name"]} for r in data]
            logger.debug("Found %d repo(s) for org \"%s\".", len(repos), owner)
            return repos
        except httpx.HTTPError as org_err:
            logger.debug("Failed to list repos as org \"%s\", trying as user: %s", owner, org_err)

        data = await self._get_paginated(
            f"/users/{owner}/repos", {"per_page": 100, "type": "owner"}
        )
        repos = [{"owner": owner, "name": r["name"]} for r in data]
        logger.debug("Found %d repo(s) for user \"%s\".", len(repos), owner)
        return repos

    # -------------------------------------------------------------------
    # Issue comments
    # -------------------------------------------------------------------
    async def create_issue_comment(self, owner: str, repo: str, number: int, body: str) -> int:
        logger.debug(
            "Creating issue comment.",
            extra={"context": {"repo": f"{owner}/{repo}", "pr": number}},
        )
        response = await self._client.post(
            f"/repos/{owner}/{repo}/issues/{number}/comments", json={"body": body}
        )
        response.raise_for_status()
        return response.json()["id"]
