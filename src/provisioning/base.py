"""
Shared Provisioning Steps.

Both scenario builds and assessment forks create (or reuse) an organization
repository from a template, rebuild its history from a baseline commit and
replicate issues. Reusing an existing repository keeps provisioning
idempotent by id: history is rebuilt from the root commit and the branch is
force-updated, and issues whose title already exists are not created again.
"""

import asyncio
from typing import List, Mapping, Optional, Sequence, Tuple

from config import logger, settings
from builders.issues import IssueDraft
from builders.policy import DEFAULT_POLICY, Entity, FailurePolicy, ProvisioningReport
from errors import ObjectStoreError
from provisioning.readiness import Sleep
from storage.report_store import ReportStore
from store.base import ObjectStore, ObjectStoreFactory


class Provisioner:
    """
    Base class for provisioning pipelines.

    Attributes:
        workspace (ObjectStoreFactory): Opens and creates repositories
        report_store (Optional[ReportStore]): Persists run reports
        branch (str): Branch whose ref is rewritten
        private (bool): Visibility of created repositories
        policy (Mapping[Entity, FailurePolicy]): Failure policy per entity type
    """

    def __init__(
        self,
        workspace: ObjectStoreFactory,
        report_store: Optional[ReportStore] = None,
        branch: Optional[str] = None,
        private: Optional[bool] = None,
        policy: Mapping[Entity, FailurePolicy] = DEFAULT_POLICY,
        sleep: Sleep = asyncio.sleep,
    ):
        self.workspace = workspace
        self.report_store = report_store
        self.branch = branch or settings.default_branch
        self.private = settings.private_repos if private is None else private
        self.policy = policy
        self.sleep = sleep

    async def _open_or_create(
        self, report: ProvisioningReport, name: str, template: str, description: str
    ) -> Tuple[ObjectStore, bool]:
        """
        Reuse the named repository or generate it from a template.

        Returns:
            Tuple[ObjectStore, bool]: Target repository and whether it was reused

        Raises:
            ProvisioningError: If the repository can neither be found nor created
        """
        try:
            target = await self.workspace.find(name)
            reused = target is not None
            if target is None:
                target = await self.workspace.create_from_template(
                    template, name, description, self.private
                )
        except ObjectStoreError as e:
            report.omit(Entity.REPOSITORY, name, e, self.policy)
            raise

        if reused:
            logger.info(
                {
                    "message": "Repository exists, rebuilding in place",
                    "repository": target.full_name,
                }
            )
        report.repository = target.full_name
        report.repository_url = target.html_url
        report.record(Entity.REPOSITORY)
        return target, reused

    async def _baseline(
        self, target: ObjectStore, reused: bool, report: ProvisioningReport
    ) -> Optional[str]:
        """Root commit of a reused repository; None means the branch head."""
        if not reused:
            return None
        try:
            commits = await target.list_commits()
        except ObjectStoreError as e:
            report.omit(Entity.REF, "root commit", e, self.policy)
            return None
        return commits[0].sha if commits else None

    async def _new_drafts(
        self,
        target: ObjectStore,
        drafts: Sequence[IssueDraft],
        reused: bool,
        report: ProvisioningReport,
    ) -> List[IssueDraft]:
        """Drop drafts whose issue already exists in a reused repository."""
        if not reused:
            return list(drafts)
        try:
            existing = {issue.title for issue in await target.list_issues()}
        except ObjectStoreError as e:
            report.omit(Entity.ISSUE, "existing issues", e, self.policy)
            return []
        return [draft for draft in drafts if draft.title not in existing]

    def _save(self, report: ProvisioningReport) -> None:
        if self.report_store is None:
            return
        try:
            self.report_store.store_report(report)
        except OSError:
            # Already logged by the store; a missing report does not fail the run
            pass
