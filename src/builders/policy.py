"""
Partial Failure Policy.

Once a repository exists, most remote failures are tolerated: the failed
object is logged, recorded as an omission and skipped, because a usable but
imperfect repository is preferred over none. Each entity type carries an
explicit policy; only the repository itself and the final ref update are
fatal by default.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from config import logger
from errors import ProvisioningError


class Entity(Enum):
    REPOSITORY = "repository"
    SCAFFOLD_FILE = "scaffold_file"
    BLOB = "blob"
    TREE = "tree"
    COMMIT = "commit"
    REF = "ref"
    LABEL = "label"
    ISSUE = "issue"
    COMMENT = "comment"
    ISSUE_STATE = "issue_state"
    TEMPLATE_FLAG = "template_flag"
    SOURCE = "source"


class FailurePolicy(Enum):
    SKIP = "skip"
    FATAL = "fatal"


DEFAULT_POLICY: Dict[Entity, FailurePolicy] = {
    entity: FailurePolicy.SKIP for entity in Entity
}
DEFAULT_POLICY[Entity.REPOSITORY] = FailurePolicy.FATAL
DEFAULT_POLICY[Entity.REF] = FailurePolicy.FATAL


class ProvisioningStatus(Enum):
    """
    Lifecycle of a provisioning run.

    Attributes:
        BUILDING: Mutations are being applied
        BUILT: Every object was created
        PARTIALLY_BUILT: Usable repository with logged omissions
        FAILED: No usable repository exists
    """

    BUILDING = "building"
    BUILT = "built"
    PARTIALLY_BUILT = "partially_built"
    FAILED = "failed"


class Omission(BaseModel):
    """An object that could not be created and was skipped."""

    entity: Entity
    detail: str
    error: str


class ProvisioningReport(BaseModel):
    """
    Outcome of one provisioning run.

    Attributes:
        run_id (str): Scenario or assessment id
        repository (Optional[str]): owner/name once the repository exists
        status (ProvisioningStatus): Current lifecycle state
        created (Dict[str, int]): Count of created objects per entity type
        omissions (List[Omission]): Skipped objects
    """

    run_id: str
    kind: str
    repository: Optional[str] = None
    repository_url: Optional[str] = None
    status: ProvisioningStatus = ProvisioningStatus.BUILDING
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    created: Dict[str, int] = Field(default_factory=dict)
    omissions: List[Omission] = Field(default_factory=list)

    def record(self, entity: Entity, count: int = 1) -> None:
        self.created[entity.value] = self.created.get(entity.value, 0) + count

    def count(self, entity: Entity) -> int:
        return self.created.get(entity.value, 0)

    def omit(
        self,
        entity: Entity,
        detail: str,
        error: Exception,
        policy: Mapping[Entity, FailurePolicy] = DEFAULT_POLICY,
    ) -> None:
        """
        Record a failed object and apply its failure policy.

        Args:
            entity (Entity): Type of the failed object
            detail (str): Which object failed (path, title, sha)
            error (Exception): The failure
            policy (Mapping[Entity, FailurePolicy]): Policy per entity type

        Raises:
            ProvisioningError: When the entity type is fatal
        """
        self.omissions.append(Omission(entity=entity, detail=detail, error=str(error)))
        if policy.get(entity, FailurePolicy.SKIP) is FailurePolicy.FATAL:
            self.status = ProvisioningStatus.FAILED
            self.finished_at = datetime.now(timezone.utc)
            logger.error(
                {
                    "message": f"Failed to create {entity.value}, aborting",
                    "run_id": self.run_id,
                    "detail": detail,
                    "error": str(error),
                }
            )
            raise ProvisioningError(
                f"{entity.value} {detail} failed for {self.run_id}: {error}"
            ) from error

        logger.warning(
            {
                "message": f"Failed to create {entity.value}, skipping",
                "run_id": self.run_id,
                "detail": detail,
                "error": str(error),
            }
        )

    def finish(self) -> "ProvisioningReport":
        self.status = (
            ProvisioningStatus.PARTIALLY_BUILT
            if self.omissions
            else ProvisioningStatus.BUILT
        )
        self.finished_at = datetime.now(timezone.utc)
        return self
