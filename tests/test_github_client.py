"""
GitHub Client Tests
===================
REST and GraphQL calls against an httpx.MockTransport.
"""
import asyncio
import json
import subprocess
from unittest.mock import MagicMock, patch

import httpx
import pytest

from autofix.agents.bugbot_monitor import BugbotMonitor
from autofix.core.config import DaemonConfig
from autofix.core.exceptions import ConfigError
from autofix.services.github_client import (
    API_URL,
    GitHubClient,
    extract_pr_number,
    resolve_github_token,
    validate_github_token,
)
from autofix.state.ledger import StateStore


def make_client(handler, bot_login="cursor[bot]"):
    transport = httpx.MockTransport(handler)
    return GitHubClient(
        token="ghp_test",
        bot_login=bot_login,
        client=httpx.AsyncClient(base_url=API_URL, transport=transport),
    )


def raw_comment(comment_id, pr_number, login="cursor[bot]"):
    return {
        "id": comment_id,
        "body": f"<!-- BUGBOT_BUG_ID: b{comment_id} -->",
        "path": "src/a.ts",
        "line": 3,
        "commit_id": "c0ffee",
        "user": {"login": login},
        "pull_request_url": f"{API_URL}/repos/acme/widgets/pulls/{pr_number}",
        "pull_request_review_id": 55,
        "created_at": "2026-03-09T10:00:00Z",
    }


def pr_payload(state="open", number=7):
    return {
        "number": number,
        "state": state,
        "title": "Add widget",
        "head": {"ref": "feature", "sha": "abc"},
        "base": {"ref": "main"},
        "html_url": f"https://github.com/acme/widgets/pull/{number}",
    }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def test_extract_pr_number():
    assert extract_pr_number(f"{API_URL}/repos/o/r/pulls/42") == 42
    assert extract_pr_number("https://example.com/issues/3") is None
    assert extract_pr_number("") is None


def test_validate_github_token():
    validate_github_token("ghp_abc")
    validate_github_token("github_pat_abc")
    with pytest.raises(ConfigError):
        validate_github_token("not-a-token")


def test_resolve_token_prefers_env(monkeypatch):
    monkeypatch.setenv("GH_TOKEN", "ghp_fromenv")
    with patch("subprocess.run") as mock_run:
        assert resolve_github_token() == "ghp_fromenv"
    mock_run.assert_not_called()


def test_resolve_token_falls_back_to_gh_cli(monkeypatch):
    monkeypatch.delenv("GH_TOKEN", raising=False)
    with patch("subprocess.run", return_value=MagicMock(stdout="gho_cli\n")):
        assert resolve_github_token() == "gho_cli"


def test_resolve_token_fails_without_auth(monkeypatch):
    monkeypatch.delenv("GH_TOKEN", raising=False)
    with patch("subprocess.run", side_effect=subprocess.CalledProcessError(1, ["gh"])):
        with pytest.raises(ConfigError, match="gh auth login"):
            resolve_github_token()


def test_default_client_sends_bearer_token():
    client = GitHubClient(token="ghp_secret")
    try:
        assert client._client.headers["Authorization"] == "Bearer ghp_secret"
        assert str(client._client.base_url).startswith(API_URL)
    finally:
        asyncio.run(client.aclose())


# ---------------------------------------------------------------------------
# Review comments
# ---------------------------------------------------------------------------
def test_bot_comments_grouped_by_pr_across_pages():
    seen = []

    def handler(request):
        seen.append(request.url)
        if request.url.params.get("page") == "2":
            return httpx.Response(200, json=[raw_comment(3, 8)])
        return httpx.Response(
            200,
            json=[raw_comment(1, 7), raw_comment(2, 7, login="octocat")],
            headers={"Link": f'<{API_URL}/repos/acme/widgets/pulls/comments?page=2>; rel="next"'},
        )

    async def run_test():
        client = make_client(handler)
        try:
            return await client.list_repo_bot_comments("acme", "widgets", since="2026-03-03T12:00:00Z")
        finally:
            await client.aclose()

    grouped = asyncio.run(run_test())

    assert sorted(grouped) == [7, 8]
    assert [c.id for c in grouped[7]] == [1]
    assert grouped[7][0].user_login == "cursor[bot]"
    assert grouped[7][0].pull_request_review_id == 55
    assert seen[0].path == "/repos/acme/widgets/pulls/comments"
    assert seen[0].params["since"] == "2026-03-03T12:00:00Z"
    assert seen[0].params["sort"] == "created"
    assert seen[0].params["direction"] == "desc"
    assert len(seen) == 2


def test_no_since_param_for_full_scan():
    seen = []

    def handler(request):
        seen.append(request.url)
        return httpx.Response(200, json=[])

    async def run_test():
        client = make_client(handler)
        try:
            return await client.list_repo_bot_comments("acme", "widgets")
        finally:
            await client.aclose()

    assert asyncio.run(run_test()) == {}
    assert "since" not in seen[0].params


# ---------------------------------------------------------------------------
# Pull requests
# ---------------------------------------------------------------------------
@pytest.mark.parametrize("status", [403, 404, 410])
def test_inaccessible_pr_is_none(status):
    client = make_client(lambda request: httpx.Response(status, json={"message": "nope"}))
    assert asyncio.run(client.get_pull_request("acme", "widgets", 7)) is None


@pytest.mark.parametrize("status,headers", [
    (403, {"x-ratelimit-remaining": "0"}),
    (403, {"retry-after": "60"}),
    (429, {"retry-after": "60"}),
])
def test_rate_limited_pr_fetch_raises(status, headers):
    client = make_client(lambda request: httpx.Response(
        status, json={"message": "API rate limit exceeded"}, headers=headers,
    ))
    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(client.get_pull_request("acme", "widgets", 7))


def test_rate_limited_pr_leaves_bugs_retryable(tmp_path):
    def handler(request):
        if request.url.path == "/repos/acme/widgets/pulls/comments":
            return httpx.Response(200, json=[raw_comment(1, 12)])
        return httpx.Response(
            403,
            json={"message": "API rate limit exceeded"},
            headers={"x-ratelimit-remaining": "0"},
        )

    state = StateStore(str(tmp_path / "state.db"))
    try:
        monitor = BugbotMonitor(make_client(handler), state, DaemonConfig(github_repos=["acme/widgets"]))
        assert asyncio.run(monitor.discover_unprocessed_bugs()) == []
        assert state.is_bug_processed("b1") is False
        assert state.entries_for("acme/widgets", 12) == []
    finally:
        state.close()


@pytest.mark.parametrize("state", ["closed", "merged"])
def test_non_open_pr_is_none(state):
    client = make_client(lambda request: httpx.Response(200, json=pr_payload(state=state)))
    assert asyncio.run(client.get_pull_request("acme", "widgets", 7)) is None


def test_open_pr_is_returned():
    client = make_client(lambda request: httpx.Response(200, json=pr_payload()))
    pr = asyncio.run(client.get_pull_request("acme", "widgets", 7))

    assert pr.full_name == "acme/widgets"
    assert pr.number == 7
    assert pr.head_ref == "feature"
    assert pr.base_ref == "main"
    assert pr.head_sha == "abc"


def test_server_error_propagates():
    client = make_client(lambda request: httpx.Response(500))
    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(client.get_pull_request("acme", "widgets", 7))


# ---------------------------------------------------------------------------
# Resolved threads
# ---------------------------------------------------------------------------
def thread_page(nodes, has_next=False, cursor=None):
    return {"data": {"repository": {"pullRequest": {"reviewThreads": {
        "pageInfo": {"hasNextPage": has_next, "endCursor": cursor},
        "nodes": nodes,
    }}}}}


def thread(resolved, comment_id):
    return {"isResolved": resolved, "comments": {"nodes": [{"databaseId": comment_id}]}}


def test_resolved_ids_across_pages():
    cursors = []

    def handler(request):
        variables = json.loads(request.content)["variables"]
        cursors.append(variables["after"])
        if variables["after"] is None:
            return httpx.Response(200, json=thread_page([thread(True, 1), thread(False, 2)], True, "c1"))
        return httpx.Response(200, json=thread_page([thread(True, 3), {"isResolved": True, "comments": {"nodes": []}}]))

    client = make_client(handler)
    assert asyncio.run(client.get_resolved_comment_ids("acme", "widgets", 7)) == {1, 3}
    assert cursors == [None, "c1"]


def test_graphql_errors_raise():
    client = make_client(lambda request: httpx.Response(200, json={"errors": [{"message": "bad query"}]}))
    with pytest.raises(RuntimeError, match="bad query"):
        asyncio.run(client.get_resolved_comment_ids("acme", "widgets", 7))


# ---------------------------------------------------------------------------
# Repositories and comments
# ---------------------------------------------------------------------------
def test_owner_repos_fall_back_to_user():
    def handler(request):
        if request.url.path.startswith("/orgs/"):
            return httpx.Response(404, json={"message": "Not Found"})
        return httpx.Response(200, json=[{"name": "dotfiles"}, {"name": "blog"}])

    client = make_client(handler)
    assert asyncio.run(client.list_owner_repos("octocat")) == [
        {"owner": "octocat", "name": "dotfiles"},
        {"owner": "octocat", "name": "blog"},
    ]


def test_owner_repos_from_org():
    client = make_client(lambda request: httpx.Response(200, json=[{"name": "widgets"}]))
    assert asyncio.run(client.list_owner_repos("acme")) == [{"owner": "acme", "name": "widgets"}]


def test_create_issue_comment():
    bodies = []

    def handler(request):
        bodies.append((request.method, request.url.path, json.loads(request.content)))
        return httpx.Response(201, json={"id": 991})

    client = make_client(handler)
    assert asyncio.run(client.create_issue_comment("acme", "widgets", 7, "hello")) == 991
    assert bodies == [("POST", "/repos/acme/widgets/issues/7/comments", {"body": "hello"})]
