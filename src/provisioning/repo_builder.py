"""
Repository Builder.

Materializes a validated RepoSpec into a repository:
1. Generate the repository from the RepoSpec's scaffold template
2. Wait until the template files are present
3. Build the commit history; the first commit also rewrites the scaffold
   README and package manifest with project-specific content
4. Create issues with their comments
5. Mark the repository as a template for per-assessment forks

After the repository exists, failures are logged and skipped; only the
repository creation and the final ref update are fatal.
"""

import json
from typing import List, Optional

from config import logger
from builders.history import FileWrite, HistoryMaterializer
from builders.issues import IssueReplicator, drafts_from_spec
from builders.policy import Entity, ProvisioningReport
from errors import ObjectStoreError, ProvisioningError
from provisioning.base import Provisioner
from provisioning.readiness import wait_until_ready
from specs.models import RepoSpec
from specs.scaffolds import ScaffoldRegistry
from store.base import ObjectStore, ObjectStoreFactory

README_PATH = "README.md"
MANIFEST_PATH = "package.json"


def repo_name_for_scenario(scenario_id: str) -> str:
    return f"simulation-{scenario_id}"


class RepoBuilder(Provisioner):
    """
    Builds scenario template repositories from specs.

    Attributes:
        registry (ScaffoldRegistry): Scaffolds a RepoSpec may reference
    """

    def __init__(
        self,
        workspace: ObjectStoreFactory,
        registry: Optional[ScaffoldRegistry] = None,
        **kwargs,
    ):
        super().__init__(workspace, **kwargs)
        self.registry = registry or ScaffoldRegistry()

    async def _scaffold_overlay(
        self, target: ObjectStore, spec: RepoSpec, report: ProvisioningReport
    ) -> List[FileWrite]:
        """README and package manifest rewritten for the project."""
        spec_paths = {file.path for file in spec.files}
        writes: List[FileWrite] = []
        if README_PATH not in spec_paths:
            writes.append(FileWrite(path=README_PATH, content=spec.readme_content))

        if MANIFEST_PATH in spec_paths:
            return writes
        try:
            existing = await target.get_file(MANIFEST_PATH)
            if existing is not None:
                manifest = json.loads(existing[0])
                manifest["name"] = spec.project_name
                manifest["description"] = spec.project_description
                writes.append(
                    FileWrite(
                        path=MANIFEST_PATH,
                        content=json.dumps(manifest, indent=2) + "\n",
                    )
                )
        except (ObjectStoreError, ValueError) as e:
            report.omit(Entity.SCAFFOLD_FILE, MANIFEST_PATH, e, self.policy)
        return writes

    async def _mark_as_template(
        self, target: ObjectStore, report: ProvisioningReport
    ) -> None:
        try:
            await target.mark_as_template()
        except ObjectStoreError as e:
            report.omit(Entity.TEMPLATE_FLAG, target.full_name, e, self.policy)
            return
        report.record(Entity.TEMPLATE_FLAG)
        logger.info({"message": "Marked as template", "repository": target.full_name})

    async def build_from_spec(self, scenario_id: str, spec: RepoSpec) -> str:
        """
        Build a scenario repository from a validated spec.

        Args:
            scenario_id (str): Scenario id, names the repository
            spec (RepoSpec): Validated specification

        Returns:
            str: Repository URL

        Raises:
            ProvisioningError: If the repository cannot be created or its ref
                cannot be updated
        """
        scaffold = self.registry.get(spec.scaffold_id)
        if scaffold is None:
            raise ProvisioningError(f"Unknown scaffold: {spec.scaffold_id}")

        report = ProvisioningReport(run_id=scenario_id, kind="scenario")
        name = repo_name_for_scenario(scenario_id)
        logger.info(
            {
                "message": "Building repository from spec",
                "scenario_id": scenario_id,
                "repository": name,
                "scaffold": scaffold.repo_template,
            }
        )

        try:
            target, reused = await self._open_or_create(
                report, name, scaffold.repo_template, spec.project_description
            )
            if not reused:
                await wait_until_ready(target, scaffold.readiness_file, sleep=self.sleep)
            base_sha = await self._baseline(target, reused, report)

            overlay = await self._scaffold_overlay(target, spec, report)
            materializer = HistoryMaterializer(target, report, policy=self.policy)
            await materializer.materialize(
                spec, self.branch, base_sha=base_sha, initial_writes=overlay
            )

            drafts = await self._new_drafts(
                target, drafts_from_spec(spec.issues), reused, report
            )
            await IssueReplicator(target, report, policy=self.policy).replicate(drafts)
            await self._mark_as_template(target, report)
        except ProvisioningError:
            self._save(report)
            raise

        report.finish()
        self._save(report)
        logger.info(
            {
                "message": "Built repository",
                "scenario_id": scenario_id,
                "url": target.html_url,
                "status": report.status.value,
                "files": len(spec.files),
                "commits": report.count(Entity.COMMIT),
                "issues": report.count(Entity.ISSUE),
                "omissions": len(report.omissions),
            }
        )
        return target.html_url
