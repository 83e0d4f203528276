"""
Commit History Materializer.

Builds a linear commit history on top of a repository's baseline commit using
the blob -> tree -> commit -> ref pipeline.

Ordering is strict: each commit's parent and base tree are the outputs of the
previous commit, so commits are created one at a time. The (commit sha,
tree sha) pair is threaded through the walk as an immutable HistoryCursor.
Blob uploads within a single commit are independent and fan out with a
bounded number of concurrent requests.
"""

import asyncio
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from config import logger, settings
from builders.policy import DEFAULT_POLICY, Entity, FailurePolicy, ProvisioningReport
from errors import ObjectStoreError
from specs.models import CommitSpec, FileSpec, RepoSpec
from store.base import ObjectStore
from store.models import CommitRecord, FileChange, GitIdentity, TreeEntry


@dataclass(frozen=True)
class HistoryCursor:
    """
    Position of the history walk.

    Attributes:
        commit_sha (str): Parent for the next commit
        tree_sha (str): Base tree for the next commit
    """

    commit_sha: str
    tree_sha: str

    def advance(self, commit_sha: str, tree_sha: str) -> "HistoryCursor":
        return HistoryCursor(commit_sha=commit_sha, tree_sha=tree_sha)


@dataclass(frozen=True)
class FileWrite:
    """A path to add or update, or to remove when ``content`` is None."""

    path: str
    content: Optional[str]
    encoding: str = "utf-8"

    @property
    def is_removal(self) -> bool:
        return self.content is None


@dataclass(frozen=True)
class ChangeSet:
    """Everything needed to create one commit."""

    message: str
    author: GitIdentity
    committer: GitIdentity
    writes: Tuple[FileWrite, ...] = ()


def changeset_from_spec(
    commit: CommitSpec, files: Sequence[FileSpec], now: Optional[datetime] = None
) -> ChangeSet:
    """
    Build a change set for a spec commit.

    The author is also the committer; both are dated ``now - days_ago``.
    """
    identity = GitIdentity(
        name=commit.author_name,
        email=commit.author_email,
        date=commit.committed_at(now),
    )
    return ChangeSet(
        message=commit.message,
        author=identity,
        committer=identity,
        writes=tuple(FileWrite(path=file.path, content=file.content) for file in files),
    )


def changeset_from_source(commit: CommitRecord, changes: Iterable[FileChange]) -> ChangeSet:
    """
    Build a change set replaying an existing commit.

    Original author, committer and message are kept. Removed files, and the
    old path of renamed files, are removed from the tree.
    """
    writes: List[FileWrite] = []
    for change in changes:
        if change.is_removal:
            writes.append(FileWrite(path=change.path, content=None))
            continue
        if change.previous_path and change.previous_path != change.path:
            writes.append(FileWrite(path=change.previous_path, content=None))
        writes.append(
            FileWrite(
                path=change.path,
                content=change.content_base64 or "",
                encoding="base64",
            )
        )
    return ChangeSet(
        message=commit.message,
        author=commit.author,
        committer=commit.committer,
        writes=tuple(writes),
    )


class HistoryMaterializer:
    """
    Creates commits on a remote object store.

    Attributes:
        store (ObjectStore): Target repository
        report (ProvisioningReport): Collects created objects and omissions
        blob_concurrency (int): Concurrent blob uploads within one commit
        policy (Mapping[Entity, FailurePolicy]): Failure policy per entity type
    """

    def __init__(
        self,
        store: ObjectStore,
        report: ProvisioningReport,
        blob_concurrency: Optional[int] = None,
        policy: Mapping[Entity, FailurePolicy] = DEFAULT_POLICY,
    ):
        self.store = store
        self.report = report
        self.blob_concurrency = blob_concurrency or settings.blob_concurrency
        self.policy = policy

    async def start(self, branch: str, base_sha: Optional[str] = None) -> HistoryCursor:
        """
        Position a cursor at the baseline commit.

        Args:
            branch (str): Branch whose head is the baseline
            base_sha (Optional[str]): Explicit baseline commit instead of the head

        Raises:
            ProvisioningError: If the baseline cannot be read
        """
        try:
            head_sha = base_sha or await self.store.get_ref(branch)
            head = await self.store.get_commit(head_sha)
        except ObjectStoreError as e:
            self.report.omit(Entity.REF, f"heads/{branch}", e, self.policy)
            raise

        logger.debug(
            {
                "message": "History baseline",
                "repository": self.store.full_name,
                "commit": head_sha,
                "tree": head.tree_sha,
            }
        )
        return HistoryCursor(commit_sha=head_sha, tree_sha=head.tree_sha)

    async def _create_entries(self, writes: Sequence[FileWrite]) -> List[TreeEntry]:
        semaphore = asyncio.Semaphore(self.blob_concurrency)

        async def _entry(write: FileWrite) -> Optional[TreeEntry]:
            if write.is_removal:
                return TreeEntry(path=write.path, sha=None)
            async with semaphore:
                try:
                    sha = await self.store.create_blob(write.content, write.encoding)
                except ObjectStoreError as e:
                    self.report.omit(Entity.BLOB, write.path, e, self.policy)
                    return None
            self.report.record(Entity.BLOB)
            return TreeEntry(path=write.path, sha=sha)

        entries = await asyncio.gather(*(_entry(write) for write in writes))
        return [entry for entry in entries if entry is not None]

    async def apply(self, cursor: HistoryCursor, changeset: ChangeSet) -> HistoryCursor:
        """
        Create one commit on top of the cursor.

        A commit is always attempted. Its tree is the incremental tree when
        one could be built, otherwise the current tree. When the commit
        itself fails the cursor is returned unchanged.

        Args:
            cursor (HistoryCursor): Current position
            changeset (ChangeSet): Files and metadata of the commit

        Returns:
            HistoryCursor: Position after the commit
        """
        tree_sha = cursor.tree_sha
        if changeset.writes:
            entries = await self._create_entries(changeset.writes)
            if entries:
                try:
                    tree_sha = await self.store.create_tree(cursor.tree_sha, entries)
                    self.report.record(Entity.TREE)
                except ObjectStoreError as e:
                    self.report.omit(Entity.TREE, changeset.message, e, self.policy)

        try:
            commit_sha = await self.store.create_commit(
                changeset.message,
                tree_sha,
                [cursor.commit_sha],
                changeset.author,
                changeset.committer,
            )
        except ObjectStoreError as e:
            self.report.omit(Entity.COMMIT, changeset.message, e, self.policy)
            return cursor

        self.report.record(Entity.COMMIT)
        return cursor.advance(commit_sha, tree_sha)

    async def finalize(self, cursor: HistoryCursor, branch: str) -> None:
        """
        Force the branch to the last commit.

        Force is required because the branch still points at the baseline.

        Raises:
            ProvisioningError: If the ref cannot be updated
        """
        try:
            await self.store.update_ref(branch, cursor.commit_sha, force=True)
        except ObjectStoreError as e:
            self.report.omit(Entity.REF, f"heads/{branch}", e, self.policy)
            return
        self.report.record(Entity.REF)
        logger.info(
            {
                "message": "Updated branch ref",
                "repository": self.store.full_name,
                "branch": branch,
                "commit": cursor.commit_sha,
            }
        )

    async def replay(
        self,
        changesets: Iterable[ChangeSet],
        branch: Optional[str] = None,
        base_sha: Optional[str] = None,
    ) -> HistoryCursor:
        """
        Apply change sets in order, then update the branch ref.

        Args:
            changesets (Iterable[ChangeSet]): Commits in history order
            branch (Optional[str]): Branch to rewrite, defaults to settings
            base_sha (Optional[str]): Baseline commit, defaults to the branch head

        Returns:
            HistoryCursor: Final position
        """
        branch = branch or settings.default_branch
        cursor = await self.start(branch, base_sha)
        for changeset in changesets:
            cursor = await self.apply(cursor, changeset)
        await self.finalize(cursor, branch)
        return cursor

    async def materialize(
        self,
        spec: RepoSpec,
        branch: Optional[str] = None,
        now: Optional[datetime] = None,
        base_sha: Optional[str] = None,
        initial_writes: Sequence[FileWrite] = (),
    ) -> HistoryCursor:
        """
        Build the commit history described by a RepoSpec.

        Files are grouped by the commit that adds them; commits without files
        reuse the current tree so the history keeps every waypoint.

        Args:
            spec (RepoSpec): Validated specification
            branch (Optional[str]): Branch to rewrite, defaults to settings
            now (Optional[datetime]): Reference time for commit dates
            base_sha (Optional[str]): Baseline commit, defaults to the branch head
            initial_writes (Sequence[FileWrite]): Scaffold files rewritten by
                the first commit (README, package manifest)

        Returns:
            HistoryCursor: Final position
        """
        now = now or datetime.now(timezone.utc)
        files_by_commit: Dict[int, List[FileSpec]] = spec.files_by_commit()
        changesets = [
            changeset_from_spec(commit, files_by_commit.get(index, []), now)
            for index, commit in enumerate(spec.commit_history)
        ]
        if initial_writes:
            first = changesets[0]
            changesets[0] = replace(first, writes=tuple(initial_writes) + first.writes)

        cursor = await self.replay(changesets, branch, base_sha)

        logger.info(
            {
                "message": "Materialized commit history",
                "repository": self.store.full_name,
                "commits": self.report.count(Entity.COMMIT),
                "expected_commits": len(spec.commit_history),
                "files": len(spec.files),
            }
        )
        return cursor
