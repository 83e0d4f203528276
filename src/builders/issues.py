"""
Issue Replicator.

Recreates an issue tracker state: labels, issues in their original order
(order decides the visible issue numbers), comments in order, and the final
open/closed state.

The replicator's credential is the actual API caller, so each comment body is
prefixed with a banner naming its original author.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from config import logger
from builders.policy import DEFAULT_POLICY, Entity, FailurePolicy, ProvisioningReport
from errors import ObjectStoreError
from specs.models import IssueSpec, IssueState
from store.base import ObjectStore
from store.models import CommentRecord, IssueRecord

DEFAULT_LABEL_COLOR = "ededed"

LABEL_COLORS = {
    "bug": "d73a4a",
    "feature": "0075ca",
    "enhancement": "a2eeef",
    "documentation": "0075ca",
    "priority:high": "e11d48",
    "priority:medium": "fbbd23",
    "priority:low": "0ea5e9",
    "good first issue": "7057ff",
    "help": "008672",
    "wontfix": "ffffff",
}


def label_color(name: str) -> str:
    """Deterministic color for a label name."""
    return LABEL_COLORS.get(name.lower(), DEFAULT_LABEL_COLOR)


_BANNER = re.compile(r"^\*\*[^*\n]+:\*\*\n\n")


def author_banner(author: str, body: str) -> str:
    """Prefix a comment body with its original author."""
    return f"**{author}:**\n\n{body}"


def has_banner(body: str) -> bool:
    return _BANNER.match(body) is not None


@dataclass(frozen=True)
class IssueDraft:
    """
    An issue to create, with comments as (author, body) pairs.

    A comment whose author is None is posted as is.
    """

    title: str
    body: str
    labels: Tuple[str, ...]
    closed: bool
    comments: Tuple[Tuple[Optional[str], str], ...] = ()


def drafts_from_spec(issues: Iterable[IssueSpec]) -> List[IssueDraft]:
    return [
        IssueDraft(
            title=issue.title,
            body=issue.body,
            labels=tuple(issue.labels),
            closed=issue.state is IssueState.CLOSED,
            comments=tuple((c.author_name, c.body) for c in issue.comments),
        )
        for issue in issues
    ]


def draft_from_record(issue: IssueRecord, comments: Sequence[CommentRecord]) -> IssueDraft:
    """
    Build a draft from an existing issue.

    Comments are attributed to the login that posted them. Comments that
    already open with an author banner, as replicated comments do, keep it
    and are posted unchanged.
    """
    return IssueDraft(
        title=issue.title,
        body=issue.body or "",
        labels=tuple(issue.labels),
        closed=issue.state == IssueState.CLOSED.value,
        comments=tuple(
            (None if has_banner(comment.body) else comment.author, comment.body)
            for comment in comments
        ),
    )


class IssueReplicator:
    """
    Creates labels, issues and comments on a remote issue tracker.

    Attributes:
        store (ObjectStore): Target repository
        report (ProvisioningReport): Collects created objects and omissions
        banner (bool): Prefix comment bodies with their author banner
    """

    def __init__(
        self,
        store: ObjectStore,
        report: ProvisioningReport,
        banner: bool = True,
        policy: Mapping[Entity, FailurePolicy] = DEFAULT_POLICY,
    ):
        self.store = store
        self.report = report
        self.banner = banner
        self.policy = policy

    async def ensure_labels(self, drafts: Sequence[IssueDraft]) -> None:
        """Create every referenced label once, in first-seen order."""
        labels: List[str] = []
        for draft in drafts:
            for label in draft.labels:
                if label not in labels:
                    labels.append(label)

        for label in labels:
            try:
                await self.store.create_label(label, label_color(label))
            except ObjectStoreError as e:
                self.report.omit(Entity.LABEL, label, e, self.policy)
                continue
            self.report.record(Entity.LABEL)

    async def _create_issue(self, draft: IssueDraft) -> Optional[IssueRecord]:
        try:
            issue = await self.store.create_issue(draft.title, draft.body, draft.labels)
        except ObjectStoreError as e:
            self.report.omit(Entity.ISSUE, draft.title, e, self.policy)
            return None
        self.report.record(Entity.ISSUE)
        return issue

    async def _post_comments(self, issue: IssueRecord, draft: IssueDraft) -> None:
        for author, body in draft.comments:
            text = author_banner(author, body) if self.banner and author else body
            try:
                await self.store.create_issue_comment(issue.number, text)
            except ObjectStoreError as e:
                detail = f"#{issue.number} by {author or 'unknown'}"
                self.report.omit(Entity.COMMENT, detail, e, self.policy)
                continue
            self.report.record(Entity.COMMENT)

    async def replicate(self, drafts: Sequence[IssueDraft]) -> List[IssueRecord]:
        """
        Recreate issues in order.

        Closed issues are closed only after their comments are posted.

        Args:
            drafts (Sequence[IssueDraft]): Issues in original order

        Returns:
            List[IssueRecord]: Issues that were created
        """
        await self.ensure_labels(drafts)

        created: List[IssueRecord] = []
        for draft in drafts:
            issue = await self._create_issue(draft)
            if issue is None:
                continue
            await self._post_comments(issue, draft)

            if draft.closed:
                try:
                    await self.store.close_issue(issue.number)
                    self.report.record(Entity.ISSUE_STATE)
                except ObjectStoreError as e:
                    self.report.omit(
                        Entity.ISSUE_STATE, f"#{issue.number}", e, self.policy
                    )
            created.append(issue)

        logger.info(
            {
                "message": "Replicated issues",
                "repository": self.store.full_name,
                "issues": len(created),
                "expected_issues": len(drafts),
                "comments": self.report.count(Entity.COMMENT),
            }
        )
        return created
