"""
GitHub Object Store Module.

Implements the object store interface over the GitHub REST API using PyGithub:
git data (blobs, trees, commits, refs), contents, labels, issues and
template generation.

PyGithub is blocking; every remote call runs in a worker thread so the
pipeline can fan out blob uploads with asyncio.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

import requests
from github import (
    Auth,
    Github,
    GithubException,
    InputGitAuthor,
    InputGitTreeElement,
    UnknownObjectException,
)
from github.Commit import Commit
from github.GitCommit import GitCommit
from github.GitTree import GitTree
from github.Issue import Issue
from github.Repository import Repository

from config import logger, settings
from errors import ObjectStoreError
from store.base import ObjectStore, ObjectStoreFactory
from store.models import (
    ChangeStatus,
    CommentRecord,
    CommitRecord,
    FileChange,
    GitIdentity,
    IssueRecord,
    TreeEntry,
)
from store.retry import is_transient_status, transient_retry


def parse_repo_url(repo_url: str) -> str:
    """
    Extract owner/name from a repository URL.

    Accepts browser URLs (https://github.com/owner/name[.git]) and bare
    owner/name strings.
    """
    path = urlparse(repo_url).path if "://" in repo_url else repo_url
    parts = [part for part in path.strip("/").split("/") if part]
    if len(parts) < 2:
        raise ValueError(f"Not a repository URL: {repo_url}")
    owner, name = parts[0], parts[1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    return f"{owner}/{name}"


def _git_date(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _translate(operation: str, exc: Exception) -> ObjectStoreError:
    if isinstance(exc, GithubException):
        message = exc.data.get("message") if isinstance(exc.data, dict) else None
        return ObjectStoreError(
            operation,
            message or str(exc),
            status=exc.status,
            transient=is_transient_status(exc.status or 0),
        )
    return ObjectStoreError(operation, str(exc), transient=True)


@transient_retry
async def call_github(operation: str, fn: Callable[..., Any], *args, **kwargs) -> Any:
    """
    Run a blocking PyGithub call in a worker thread.

    Raises:
        ObjectStoreError: Translated remote failure, retried when transient
    """
    try:
        return await asyncio.to_thread(fn, *args, **kwargs)
    except GithubException as e:
        raise _translate(operation, e) from e
    except requests.exceptions.RequestException as e:
        raise _translate(operation, e) from e


def _identity(author) -> GitIdentity:
    return GitIdentity(name=author.name, email=author.email, date=author.date)


def _commit_record(commit: GitCommit) -> CommitRecord:
    return CommitRecord(
        sha=commit.sha,
        tree_sha=commit.tree.sha,
        message=commit.message,
        author=_identity(commit.author),
        committer=_identity(commit.committer),
        parents=[parent.sha for parent in commit.parents],
    )


def _listed_commit_record(commit: Commit) -> CommitRecord:
    # Nested git commits in list responses carry no sha or parents
    detail = commit.commit
    return CommitRecord(
        sha=commit.sha,
        tree_sha=detail.tree.sha,
        message=detail.message,
        author=_identity(detail.author),
        committer=_identity(detail.committer),
        parents=[parent.sha for parent in commit.parents],
    )


def _issue_record(issue: Issue) -> IssueRecord:
    return IssueRecord(
        number=issue.number,
        title=issue.title,
        body=issue.body,
        state=issue.state,
        labels=[label.name for label in issue.labels],
        author=issue.user.login if issue.user else None,
        created_at=issue.created_at,
    )


class GitHubObjectStore(ObjectStore):
    """
    A single GitHub repository.

    Trees, commits and issues created or fetched through this store are
    cached by sha or number so later calls that need the PyGithub objects
    do not fetch them again.
    """

    def __init__(self, repo: Repository):
        """Wrap a PyGithub repository.

        Args:
            repo (Repository): Repository to operate on.
        """
        self._repo = repo
        self.full_name = repo.full_name
        self.html_url = repo.html_url
        self._trees: Dict[str, GitTree] = {}
        self._commits: Dict[str, GitCommit] = {}
        self._issues: Dict[int, Issue] = {}

    def _tree(self, sha: str) -> GitTree:
        if sha not in self._trees:
            self._trees[sha] = self._repo.get_git_tree(sha)
        return self._trees[sha]

    def _git_commit(self, sha: str) -> GitCommit:
        if sha not in self._commits:
            self._commits[sha] = self._repo.get_git_commit(sha)
        return self._commits[sha]

    def _issue(self, number: int) -> Issue:
        if number not in self._issues:
            self._issues[number] = self._repo.get_issue(number)
        return self._issues[number]

    async def create_blob(self, content: str, encoding: str = "utf-8") -> str:
        blob = await call_github("create_blob", self._repo.create_git_blob, content, encoding)
        return blob.sha

    async def create_tree(
        self, base_tree_sha: Optional[str], entries: Sequence[TreeEntry]
    ) -> str:
        def _create() -> GitTree:
            elements = [
                InputGitTreeElement(entry.path, entry.mode, entry.type, sha=entry.sha)
                for entry in entries
            ]
            if base_tree_sha:
                return self._repo.create_git_tree(elements, self._tree(base_tree_sha))
            return self._repo.create_git_tree(elements)

        tree = await call_github("create_tree", _create)
        self._trees[tree.sha] = tree
        return tree.sha

    async def create_commit(
        self,
        message: str,
        tree_sha: str,
        parents: Sequence[str],
        author: GitIdentity,
        committer: GitIdentity,
    ) -> str:
        def _create() -> GitCommit:
            return self._repo.create_git_commit(
                message,
                self._tree(tree_sha),
                [self._git_commit(sha) for sha in parents],
                author=InputGitAuthor(author.name, author.email, _git_date(author.date)),
                committer=InputGitAuthor(
                    committer.name, committer.email, _git_date(committer.date)
                ),
            )

        commit = await call_github("create_commit", _create)
        self._commits[commit.sha] = commit
        return commit.sha

    async def get_ref(self, branch: str) -> str:
        ref = await call_github("get_ref", self._repo.get_git_ref, f"heads/{branch}")
        return ref.object.sha

    async def update_ref(self, branch: str, sha: str, force: bool = True) -> None:
        def _update() -> None:
            self._repo.get_git_ref(f"heads/{branch}").edit(sha, force=force)

        await call_github("update_ref", _update)

    async def get_commit(self, sha: str) -> CommitRecord:
        return await call_github(
            "get_commit", lambda: _commit_record(self._git_commit(sha))
        )

    async def get_file(self, path: str) -> Optional[Tuple[str, str]]:
        def _fetch() -> Optional[Tuple[str, str]]:
            try:
                contents = self._repo.get_contents(path)
            except UnknownObjectException:
                return None
            if isinstance(contents, list):
                return None
            return contents.decoded_content.decode("utf-8"), contents.sha

        return await call_github("get_file", _fetch)

    async def put_file(
        self, path: str, content: str, message: str, sha: Optional[str] = None
    ) -> None:
        if sha:
            await call_github(
                "put_file", self._repo.update_file, path, message, content, sha
            )
        else:
            await call_github("put_file", self._repo.create_file, path, message, content)

    def _blob_base64(self, sha: str) -> str:
        blob = self._repo.get_git_blob(sha)
        if blob.encoding != "base64":
            raise ObjectStoreError("get_blob", f"unexpected encoding {blob.encoding}")
        return blob.content.replace("\n", "")

    async def get_blob(self, sha: str) -> str:
        return await call_github("get_blob", self._blob_base64, sha)

    async def list_commits(self) -> List[CommitRecord]:
        def _list() -> List[CommitRecord]:
            # Records are built here since reading a listed commit may fetch
            return [
                _listed_commit_record(commit) for commit in self._repo.get_commits()
            ]

        commits = await call_github("list_commits", _list)
        # The API lists newest first
        return list(reversed(commits))

    async def get_commit_changes(self, sha: str) -> List[FileChange]:
        def _fetch() -> List[FileChange]:
            changes = []
            for file in self._repo.get_commit(sha).files:
                status = ChangeStatus(file.status)
                if status is ChangeStatus.REMOVED:
                    changes.append(FileChange(path=file.filename, status=status))
                    continue
                content = self._blob_base64(file.sha)
                changes.append(
                    FileChange(
                        path=file.filename,
                        status=status,
                        sha=file.sha,
                        previous_path=file.previous_filename,
                        content_base64=content,
                    )
                )
            return changes

        return await call_github("get_commit_changes", _fetch)

    async def create_label(self, name: str, color: str) -> None:
        try:
            await call_github("create_label", self._repo.create_label, name, color)
        except ObjectStoreError as e:
            # 422 means a label with this name already exists
            if e.status != 422:
                raise
            logger.debug({"message": "Label already exists", "label": name})

    async def create_issue(
        self, title: str, body: str, labels: Sequence[str]
    ) -> IssueRecord:
        issue = await call_github(
            "create_issue",
            self._repo.create_issue,
            title=title,
            body=body,
            labels=list(labels),
        )
        self._issues[issue.number] = issue
        return _issue_record(issue)

    async def create_issue_comment(self, number: int, body: str) -> None:
        def _comment() -> None:
            self._issue(number).create_comment(body)

        await call_github("create_issue_comment", _comment)

    async def close_issue(self, number: int) -> None:
        def _close() -> None:
            self._issue(number).edit(state="closed")

        await call_github("close_issue", _close)

    async def list_issues(self) -> List[IssueRecord]:
        def _list() -> List[Issue]:
            issues = self._repo.get_issues(state="all", sort="created", direction="asc")
            return [issue for issue in issues if issue.pull_request is None]

        issues = await call_github("list_issues", _list)
        for issue in issues:
            self._issues[issue.number] = issue
        return [_issue_record(issue) for issue in issues]

    async def list_issue_comments(self, number: int) -> List[CommentRecord]:
        def _list() -> List[CommentRecord]:
            return [
                CommentRecord(
                    author=comment.user.login if comment.user else "unknown",
                    body=comment.body or "",
                )
                for comment in self._issue(number).get_comments()
            ]

        return await call_github("list_issue_comments", _list)

    async def mark_as_template(self) -> None:
        await call_github("mark_as_template", self._repo.edit, is_template=True)


class GitHubWorkspace(ObjectStoreFactory):
    """
    Organization-scoped access to GitHub repositories.

    Attributes:
        github (Github): Authenticated PyGithub client
        org (str): Organization that owns created repositories
    """

    def __init__(
        self,
        token: Optional[str] = None,
        org: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        """Initialize the GitHub client.

        Args:
            token (Optional[str]): Organization token, defaults to settings
            org (Optional[str]): Owning organization, defaults to settings
            base_url (Optional[str]): API base URL, defaults to settings
            timeout (Optional[int]): Request timeout in seconds, defaults to settings
        """
        # Retries are owned by call_github
        self.github = Github(
            auth=Auth.Token(token or settings.github_token.get_secret_value()),
            base_url=base_url or settings.github_api_url,
            timeout=timeout or settings.request_timeout,
            retry=None,
        )
        self.org = org or settings.github_org

    def check_rate_limit(self, check_name: str) -> None:
        """
        Log the rate limit status seen on the last response.

        Args:
            check_name (str): Identifier for the rate limit check point.
        """
        remaining, limit = self.github.rate_limiting
        logger.info(
            {
                "message": f"{check_name} API rate limit status",
                "remaining_points": remaining,
                "total_points": limit,
            }
        )
        if limit and remaining < limit * 0.1:
            logger.warning(
                {
                    "message": "GitHub API rate limit running low",
                    "remaining_points": remaining,
                }
            )

    async def open(self, repo_url: str) -> GitHubObjectStore:
        repo = await call_github("get_repo", self.github.get_repo, parse_repo_url(repo_url))
        return GitHubObjectStore(repo)

    async def find(self, name: str) -> Optional[GitHubObjectStore]:
        try:
            repo = await call_github("get_repo", self.github.get_repo, f"{self.org}/{name}")
        except ObjectStoreError as e:
            if e.status == 404:
                return None
            raise
        return GitHubObjectStore(repo)

    async def create_from_template(
        self, template: str, name: str, description: str, private: bool = True
    ) -> GitHubObjectStore:
        def _generate() -> Repository:
            template_repo = self.github.get_repo(parse_repo_url(template))
            organization = self.github.get_organization(self.org)
            return organization.create_repo_from_template(
                name,
                template_repo,
                description=description,
                include_all_branches=False,
                private=private,
            )

        repo = await call_github("generate_repo_from_template", _generate)
        logger.info(
            {
                "message": "Created repository from template",
                "template": template,
                "repository": repo.full_name,
                "url": repo.html_url,
            }
        )
        return GitHubObjectStore(repo)
