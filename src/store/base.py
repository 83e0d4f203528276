"""
Abstract Base Class for Object Stores.

Defines the interface the provisioning pipeline uses to talk to a remote
content-addressable repository host (blobs, trees, commits, refs) and its
issue tracker. All repository hosts (GitHub, in-memory fakes, ...) should
implement this interface.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from store.models import (
    CommentRecord,
    CommitRecord,
    FileChange,
    GitIdentity,
    IssueRecord,
    TreeEntry,
)


class ObjectStore(ABC):
    """
    Abstract base class for a single remote repository.

    Implementations should handle:
    - Authentication with the repository service
    - Transport timeouts and retries of transient failures
    - Translation of remote payloads into store models

    Attributes:
        full_name (str): owner/name of the repository
        html_url (str): Browser URL of the repository
    """

    full_name: str
    html_url: str

    @abstractmethod
    async def create_blob(self, content: str, encoding: str = "utf-8") -> str:
        """
        Store raw file content.

        Args:
            content (str): File content, raw or base64 encoded
            encoding (str): "utf-8" or "base64"

        Returns:
            str: Blob sha
        """

    @abstractmethod
    async def create_tree(
        self, base_tree_sha: Optional[str], entries: Sequence[TreeEntry]
    ) -> str:
        """
        Create a tree from a base tree plus additions, updates and removals.

        Returns:
            str: Tree sha
        """

    @abstractmethod
    async def create_commit(
        self,
        message: str,
        tree_sha: str,
        parents: Sequence[str],
        author: GitIdentity,
        committer: GitIdentity,
    ) -> str:
        """
        Create a commit object.

        Returns:
            str: Commit sha
        """

    @abstractmethod
    async def get_ref(self, branch: str) -> str:
        """Return the commit sha a branch points to."""

    @abstractmethod
    async def update_ref(self, branch: str, sha: str, force: bool = True) -> None:
        """Point a branch at a commit."""

    @abstractmethod
    async def get_commit(self, sha: str) -> CommitRecord:
        """Fetch commit metadata, including its tree sha."""

    @abstractmethod
    async def get_file(self, path: str) -> Optional[Tuple[str, str]]:
        """
        Fetch a file from the default branch.

        Returns:
            Optional[Tuple[str, str]]: (decoded content, blob sha), or None if absent
        """

    @abstractmethod
    async def put_file(
        self, path: str, content: str, message: str, sha: Optional[str] = None
    ) -> None:
        """Create or update a file on the default branch with a single commit."""

    @abstractmethod
    async def get_blob(self, sha: str) -> str:
        """Return the base64 content of a blob."""

    @abstractmethod
    async def list_commits(self) -> List[CommitRecord]:
        """List commits of the default branch, oldest first."""

    @abstractmethod
    async def get_commit_changes(self, sha: str) -> List[FileChange]:
        """List files changed by a commit, with their full new content."""

    @abstractmethod
    async def create_label(self, name: str, color: str) -> None:
        """Create a label; an existing label with that name is not an error."""

    @abstractmethod
    async def create_issue(
        self, title: str, body: str, labels: Sequence[str]
    ) -> IssueRecord:
        """Open an issue."""

    @abstractmethod
    async def create_issue_comment(self, number: int, body: str) -> None:
        """Comment on an issue."""

    @abstractmethod
    async def close_issue(self, number: int) -> None:
        """Transition an issue to closed."""

    @abstractmethod
    async def list_issues(self) -> List[IssueRecord]:
        """List issues (not pull requests) in all states, oldest first."""

    @abstractmethod
    async def list_issue_comments(self, number: int) -> List[CommentRecord]:
        """List comments of an issue in creation order."""

    @abstractmethod
    async def mark_as_template(self) -> None:
        """Allow the repository to be used as a template."""


class ObjectStoreFactory(ABC):
    """Opens and creates repositories on a repository host."""

    @abstractmethod
    async def open(self, repo_url: str) -> ObjectStore:
        """Open an existing repository by URL or owner/name."""

    @abstractmethod
    async def find(self, name: str) -> Optional[ObjectStore]:
        """Return the organization repository with this name, if it exists."""

    @abstractmethod
    async def create_from_template(
        self, template: str, name: str, description: str, private: bool = True
    ) -> ObjectStore:
        """Generate a new repository from a template repository."""
