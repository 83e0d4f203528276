"""
Assessment Fork With History.

Generating a repository from a template yields a single squashed commit and
no issues. This module restores both into a per-assessment copy:
- every source commit after the first is replayed from its file-level diff,
  keeping the original author, committer and message;
- every source issue (pull requests excluded) is recreated in creation order
  with its comments and final state.
"""

from typing import List, Optional

from config import logger
from builders.history import ChangeSet, HistoryMaterializer, changeset_from_source
from builders.issues import IssueDraft, IssueReplicator, draft_from_record
from builders.policy import Entity, ProvisioningReport
from errors import ObjectStoreError, ProvisioningError
from provisioning.base import Provisioner
from provisioning.readiness import wait_until_ready
from store.base import ObjectStore, ObjectStoreFactory


def repo_name_for_assessment(assessment_id: str) -> str:
    return f"assessment-{assessment_id}"


class ForkOrchestrator(Provisioner):
    """
    Derives assessment repositories from scenario templates.

    Attributes:
        readiness_file (Optional[str]): File expected in every template
    """

    def __init__(
        self,
        workspace: ObjectStoreFactory,
        readiness_file: Optional[str] = "README.md",
        **kwargs,
    ):
        super().__init__(workspace, **kwargs)
        self.readiness_file = readiness_file

    async def _source_changesets(
        self, source: ObjectStore, report: ProvisioningReport
    ) -> List[ChangeSet]:
        try:
            commits = await source.list_commits()
        except ObjectStoreError as e:
            report.omit(Entity.SOURCE, f"{source.full_name} commits", e, self.policy)
            return []

        changesets = []
        # The first commit is already represented by the generated snapshot
        for commit in commits[1:]:
            try:
                changes = await source.get_commit_changes(commit.sha)
            except ObjectStoreError as e:
                report.omit(Entity.SOURCE, commit.sha, e, self.policy)
                continue
            changesets.append(changeset_from_source(commit, changes))
        return changesets

    async def _source_issues(
        self, source: ObjectStore, report: ProvisioningReport
    ) -> List[IssueDraft]:
        try:
            issues = await source.list_issues()
        except ObjectStoreError as e:
            report.omit(Entity.SOURCE, f"{source.full_name} issues", e, self.policy)
            return []

        drafts = []
        for issue in issues:
            try:
                comments = await source.list_issue_comments(issue.number)
            except ObjectStoreError as e:
                report.omit(Entity.SOURCE, f"#{issue.number} comments", e, self.policy)
                comments = []
            drafts.append(draft_from_record(issue, comments))
        return drafts

    async def fork_with_history(self, assessment_id: str, source_repo_url: str) -> str:
        """
        Create an assessment repository with the source's history and issues.

        Args:
            assessment_id (str): Assessment id, names the repository
            source_repo_url (str): Template repository URL

        Returns:
            str: URL of the assessment repository

        Raises:
            ProvisioningError: If the repository cannot be created or its ref
                cannot be updated
        """
        report = ProvisioningReport(run_id=assessment_id, kind="assessment")
        name = repo_name_for_assessment(assessment_id)
        logger.info(
            {
                "message": "Forking repository with history",
                "assessment_id": assessment_id,
                "source": source_repo_url,
                "repository": name,
            }
        )

        try:
            try:
                source = await self.workspace.open(source_repo_url)
            except ObjectStoreError as e:
                report.omit(Entity.REPOSITORY, source_repo_url, e, self.policy)
                raise

            target, reused = await self._open_or_create(
                report,
                name,
                source.full_name,
                f"Assessment repository for {assessment_id}",
            )
            if not reused:
                await wait_until_ready(target, self.readiness_file, sleep=self.sleep)
            base_sha = await self._baseline(target, reused, report)

            changesets = await self._source_changesets(source, report)
            materializer = HistoryMaterializer(target, report, policy=self.policy)
            await materializer.replay(changesets, self.branch, base_sha)

            drafts = await self._new_drafts(
                target, await self._source_issues(source, report), reused, report
            )
            await IssueReplicator(target, report, policy=self.policy).replicate(drafts)
        except ProvisioningError:
            self._save(report)
            raise

        report.finish()
        self._save(report)
        logger.info(
            {
                "message": "Forked repository with history",
                "assessment_id": assessment_id,
                "url": target.html_url,
                "status": report.status.value,
                "commits": report.count(Entity.COMMIT),
                "issues": report.count(Entity.ISSUE),
                "omissions": len(report.omissions),
            }
        )
        return target.html_url
