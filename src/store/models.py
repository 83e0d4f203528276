"""
Object Store Data Models.

Typed records exchanged with remote object stores: tree entries, git
identities, commits, file-level changes and issues.
Uses Pydantic for validation and serialization.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

BLOB_MODE = "100644"


class ChangeStatus(Enum):
    """File status in a commit diff, as reported by the remote API."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"
    COPIED = "copied"
    CHANGED = "changed"
    UNCHANGED = "unchanged"


class TreeEntry(BaseModel):
    """
    Entry of an incremental tree.

    A ``sha`` of None removes ``path`` from the base tree.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    sha: Optional[str]
    mode: str = BLOB_MODE
    type: str = "blob"


class GitIdentity(BaseModel):
    """Author or committer of a commit."""

    model_config = ConfigDict(frozen=True)

    name: str
    email: str
    date: datetime


class CommitRecord(BaseModel):
    """A commit as stored remotely."""

    sha: str
    tree_sha: str
    message: str
    author: GitIdentity
    committer: GitIdentity
    parents: List[str] = []


class FileChange(BaseModel):
    """
    A file touched by a commit.

    Attributes:
        path (str): Path after the change
        status (ChangeStatus): Kind of change
        sha (Optional[str]): Blob sha of the new content, None for removals
        previous_path (Optional[str]): Original path of a renamed file
        content_base64 (Optional[str]): Full new content, base64 encoded
    """

    path: str
    status: ChangeStatus
    sha: Optional[str] = None
    previous_path: Optional[str] = None
    content_base64: Optional[str] = None

    @property
    def is_removal(self) -> bool:
        return self.status is ChangeStatus.REMOVED


class CommentRecord(BaseModel):
    author: str
    body: str


class IssueRecord(BaseModel):
    """An issue as stored remotely."""

    number: int
    title: str
    body: Optional[str]
    state: str
    labels: List[str]
    author: Optional[str] = None
    created_at: Optional[datetime] = None
