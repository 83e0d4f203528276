"""
Tests for the GitHub object store using mocked PyGithub objects.
"""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest
import requests
from github import GithubException, UnknownObjectException
from tenacity import wait_none

from errors import ObjectStoreError
from store.github_store import (
    GitHubObjectStore,
    GitHubWorkspace,
    _git_date,
    call_github,
    parse_repo_url,
)
from store.models import ChangeStatus, GitIdentity, TreeEntry
from store.retry import is_transient, is_transient_status

DATE = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)

fast_call = call_github.retry_with(wait=wait_none())


def _person(name="Maya Chen", email="maya@ledger.dev"):
    return SimpleNamespace(name=name, email=email, date=DATE)


def _git_commit(sha, message="msg", parents=()):
    return SimpleNamespace(
        sha=sha,
        tree=SimpleNamespace(sha=f"tree-{sha}"),
        message=message,
        author=_person(),
        committer=_person(),
        parents=[SimpleNamespace(sha=p) for p in parents],
    )


@pytest.fixture
def repo():
    repo = Mock()
    repo.full_name = "skillvee/simulation-s1"
    repo.html_url = "https://github.com/skillvee/simulation-s1"
    return repo


@pytest.fixture
def store(repo):
    return GitHubObjectStore(repo)


@pytest.mark.parametrize(
    "url",
    [
        "https://github.com/skillvee/simulation-s1",
        "https://github.com/skillvee/simulation-s1.git",
        "https://github.com/skillvee/simulation-s1/tree/main",
        "skillvee/simulation-s1",
    ],
)
def test_parse_repo_url(url):
    assert parse_repo_url(url) == "skillvee/simulation-s1"


def test_parse_repo_url_rejects_owner_only():
    with pytest.raises(ValueError):
        parse_repo_url("https://github.com/skillvee")


def test_git_date_is_utc():
    naive = datetime(2024, 5, 1, 9, 30)
    assert _git_date(naive) == "2024-05-01T09:30:00Z"
    assert _git_date(DATE) == "2024-05-01T09:30:00Z"


def test_transient_classification():
    assert is_transient_status(502)
    assert is_transient_status(429)
    assert not is_transient_status(404)
    assert not is_transient_status(422)
    assert is_transient(ObjectStoreError("op", "x", status=503, transient=True))
    assert not is_transient(ValueError("x"))


@pytest.mark.asyncio
async def test_transient_errors_are_retried():
    fn = Mock(side_effect=[GithubException(502, {"message": "Bad Gateway"}, None), "ok"])

    assert await fast_call("create_blob", fn) == "ok"
    assert fn.call_count == 2


@pytest.mark.asyncio
async def test_logical_errors_are_not_retried():
    fn = Mock(side_effect=GithubException(409, {"message": "Conflict"}, None))

    with pytest.raises(ObjectStoreError) as exc_info:
        await fast_call("update_ref", fn)

    assert fn.call_count == 1
    assert exc_info.value.status == 409
    assert not exc_info.value.transient
    assert "Conflict" in str(exc_info.value)


@pytest.mark.asyncio
async def test_network_errors_retry_until_exhausted():
    fn = Mock(side_effect=requests.exceptions.ConnectionError("reset"))

    with pytest.raises(ObjectStoreError) as exc_info:
        await fast_call("get_ref", fn)

    assert exc_info.value.transient
    assert fn.call_count == 3


@pytest.mark.asyncio
async def test_create_blob(store, repo):
    repo.create_git_blob.return_value = SimpleNamespace(sha="blob1")

    assert await store.create_blob("hello") == "blob1"
    repo.create_git_blob.assert_called_once_with("hello", "utf-8")


@pytest.mark.asyncio
async def test_create_tree_on_base(store, repo):
    base = SimpleNamespace(sha="base")
    repo.get_git_tree.return_value = base
    repo.create_git_tree.return_value = SimpleNamespace(sha="tree2")

    sha = await store.create_tree(
        "base",
        [TreeEntry(path="a.ts", sha="blob1"), TreeEntry(path="old.ts", sha=None)],
    )

    assert sha == "tree2"
    elements, base_tree = repo.create_git_tree.call_args.args
    assert len(elements) == 2
    assert base_tree is base
    repo.get_git_tree.assert_called_once_with("base")


@pytest.mark.asyncio
async def test_create_commit_uses_cached_objects(store, repo):
    repo.create_git_tree.return_value = SimpleNamespace(sha="tree2")
    repo.get_git_commit.return_value = _git_commit("parent")
    repo.create_git_commit.return_value = _git_commit("c2", parents=["parent"])
    identity = GitIdentity(name="Maya Chen", email="maya@ledger.dev", date=DATE)

    await store.create_tree(None, [TreeEntry(path="a.ts", sha="blob1")])
    sha = await store.create_commit("Add a", "tree2", ["parent"], identity, identity)

    assert sha == "c2"
    repo.get_git_tree.assert_not_called()
    message, tree, parents = repo.create_git_commit.call_args.args
    assert message == "Add a"
    assert tree.sha == "tree2"
    assert [p.sha for p in parents] == ["parent"]


@pytest.mark.asyncio
async def test_get_ref_and_update_ref(store, repo):
    ref = Mock()
    ref.object.sha = "head"
    repo.get_git_ref.return_value = ref

    assert await store.get_ref("main") == "head"
    await store.update_ref("main", "c3")

    repo.get_git_ref.assert_called_with("heads/main")
    ref.edit.assert_called_once_with("c3", force=True)


@pytest.mark.asyncio
async def test_get_file(store, repo):
    repo.get_contents.return_value = SimpleNamespace(
        decoded_content=b'{"name": "x"}', sha="blob9"
    )
    assert await store.get_file("package.json") == ('{"name": "x"}', "blob9")

    repo.get_contents.side_effect = UnknownObjectException(404, {"message": "Not Found"}, None)
    assert await store.get_file("package.json") is None


def _listed_commit(sha, message="msg", parents=()):
    # List responses nest a git commit without sha or parents
    detail = SimpleNamespace(
        tree=SimpleNamespace(sha=f"tree-{sha}"),
        message=message,
        author=_person(),
        committer=_person(),
    )
    return SimpleNamespace(
        sha=sha, commit=detail, parents=[SimpleNamespace(sha=p) for p in parents]
    )


@pytest.mark.asyncio
async def test_list_commits_oldest_first(store, repo):
    repo.get_commits.return_value = [
        _listed_commit("c2", "second", parents=["c1"]),
        _listed_commit("c1", "first"),
    ]

    commits = await store.list_commits()

    assert [c.sha for c in commits] == ["c1", "c2"]
    assert commits[1].parents == ["c1"]
    assert commits[0].tree_sha == "tree-c1"
    assert commits[0].author.name == "Maya Chen"


@pytest.mark.asyncio
async def test_get_commit(store, repo):
    repo.get_git_commit.return_value = _git_commit("c2", "second", parents=["c1"])

    record = await store.get_commit("c2")

    assert record.tree_sha == "tree-c2"
    assert record.parents == ["c1"]
    repo.get_git_commit.assert_called_once_with("c2")


class _FailingDetail:
    @property
    def tree(self):
        raise GithubException(404, {"message": "Not Found"}, None)


@pytest.mark.asyncio
async def test_list_commits_translates_lazy_fetch_errors(store, repo):
    repo.get_commits.return_value = [
        SimpleNamespace(sha="c1", commit=_FailingDetail(), parents=[])
    ]

    with pytest.raises(ObjectStoreError) as exc_info:
        await store.list_commits()

    assert exc_info.value.operation == "list_commits"
    assert exc_info.value.status == 404


@pytest.mark.asyncio
async def test_get_blob_rejects_unexpected_encoding(store, repo):
    repo.get_git_blob.return_value = SimpleNamespace(content="abc", encoding="utf-8")

    with pytest.raises(ObjectStoreError):
        await store.get_blob("blob1")

    repo.get_git_blob.return_value = SimpleNamespace(content="YWJj\n", encoding="base64")
    assert await store.get_blob("blob1") == "YWJj"


@pytest.mark.asyncio
async def test_get_commit_changes(store, repo):
    repo.get_commit.return_value = SimpleNamespace(
        files=[
            SimpleNamespace(status="removed", filename="old.ts", sha=None,
                            previous_filename=None),
            SimpleNamespace(status="renamed", filename="src/new.ts", sha="blob2",
                            previous_filename="src/old.ts"),
        ]
    )
    repo.get_git_blob.return_value = SimpleNamespace(
        content="ZXhw\nb3J0\n", encoding="base64"
    )

    removed, renamed = await store.get_commit_changes("c2")

    assert removed.is_removal
    assert removed.status is ChangeStatus.REMOVED
    assert renamed.previous_path == "src/old.ts"
    assert renamed.content_base64 == "ZXhwb3J0"
    repo.get_git_blob.assert_called_once_with("blob2")


@pytest.mark.asyncio
async def test_existing_label_is_not_an_error(store, repo):
    repo.create_label.side_effect = GithubException(
        422, {"message": "Validation Failed"}, None
    )
    await store.create_label("bug", "d73a4a")

    repo.create_label.side_effect = GithubException(403, {"message": "Forbidden"}, None)
    with pytest.raises(ObjectStoreError):
        await store.create_label("bug", "d73a4a")


@pytest.mark.asyncio
async def test_issue_lifecycle(store, repo):
    issue = Mock()
    issue.number = 1
    issue.title = "Implement totals"
    issue.body = "Sum the entries"
    issue.state = "open"
    issue.labels = [SimpleNamespace(name="feature")]
    issue.user = SimpleNamespace(login="skillvee-bot")
    issue.created_at = DATE
    repo.create_issue.return_value = issue

    record = await store.create_issue("Implement totals", "Sum the entries", ("feature",))
    await store.create_issue_comment(1, "**Sam Ortiz:**\n\nok")
    await store.close_issue(1)

    assert record.number == 1
    assert record.labels == ["feature"]
    repo.create_issue.assert_called_once_with(
        title="Implement totals", body="Sum the entries", labels=["feature"]
    )
    issue.create_comment.assert_called_once_with("**Sam Ortiz:**\n\nok")
    issue.edit.assert_called_once_with(state="closed")
    repo.get_issue.assert_not_called()


@pytest.mark.asyncio
async def test_list_issues_skips_pull_requests(store, repo):
    def _issue(number, pull_request=None):
        return SimpleNamespace(
            number=number,
            title=f"Issue {number}",
            body=None,
            state="closed",
            labels=[],
            user=None,
            created_at=DATE,
            pull_request=pull_request,
        )

    repo.get_issues.return_value = [_issue(1), _issue(2, pull_request=object()), _issue(3)]

    issues = await store.list_issues()

    assert [i.number for i in issues] == [1, 3]
    repo.get_issues.assert_called_once_with(state="all", sort="created", direction="asc")


@pytest.mark.asyncio
async def test_mark_as_template(store, repo):
    await store.mark_as_template()
    repo.edit.assert_called_once_with(is_template=True)


@pytest.mark.asyncio
async def test_workspace_find_and_create(repo):
    with patch("store.github_store.Github") as github_class:
        github = github_class.return_value
        workspace = GitHubWorkspace(token="t", org="skillvee")

        github.get_repo.side_effect = UnknownObjectException(404, {"message": "Not Found"}, None)
        assert await workspace.find("simulation-s1") is None

        github.get_repo.side_effect = None
        github.get_repo.return_value = repo
        found = await workspace.find("simulation-s1")
        assert found.full_name == "skillvee/simulation-s1"

        organization = github.get_organization.return_value
        organization.create_repo_from_template.return_value = repo
        created = await workspace.create_from_template(
            "skillvee/scaffold-nextjs-ts", "simulation-s1", "Ledger", private=True
        )

    assert created.html_url == "https://github.com/skillvee/simulation-s1"
    organization.create_repo_from_template.assert_called_once_with(
        "simulation-s1",
        repo,
        description="Ledger",
        include_all_branches=False,
        private=True,
    )
    github.get_organization.assert_called_once_with("skillvee")


def test_check_rate_limit_logs():
    with patch("store.github_store.Github") as github_class:
        github_class.return_value.rate_limiting = (10, 5000)
        workspace = GitHubWorkspace(token="t")
        with patch("store.github_store.logger") as logger:
            workspace.check_rate_limit("test")

    assert logger.info.called
    assert logger.warning.called
