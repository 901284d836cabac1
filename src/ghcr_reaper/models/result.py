"""Models for the outcome of a cleanup run."""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Self

from ..exceptions import AuthError, ReaperError
from .version import VersionId

__all__ = [
    "DeletionOutcome",
    "DeletionStatus",
    "ExitCode",
    "PackageCleanupResult",
    "PackageState",
    "RunSummary",
]


class DeletionStatus(Enum):
    """What happened to one untagged version."""

    DELETED = "deleted"
    SKIPPED_DRY_RUN = "skipped (dry run)"
    FAILED = "failed"


class PackageState(Enum):
    """Lifecycle of the cleanup of a single package.

    ``FAILED`` is only reachable from ``LISTING``.
    """

    PENDING = "pending"
    LISTING = "listing"
    CLASSIFYING = "classifying"
    DELETING = "deleting"
    DONE = "done"
    FAILED = "failed"


class ExitCode(IntEnum):
    """Process exit status."""

    SUCCESS = 0
    PARTIAL_FAILURE = 1
    CONFIGURATION_ERROR = 2
    AUTH_ERROR = 3
    INTERRUPTED = 130


@dataclass(frozen=True)
class DeletionOutcome:
    """Result of trying to delete one version."""

    version_id: VersionId
    status: DeletionStatus
    reason: str | None = None
    error: ReaperError | None = None

    @classmethod
    def deleted(cls, version_id: VersionId) -> Self:
        return cls(version_id=version_id, status=DeletionStatus.DELETED)

    @classmethod
    def skipped_dry_run(cls, version_id: VersionId) -> Self:
        return cls(
            version_id=version_id, status=DeletionStatus.SKIPPED_DRY_RUN
        )

    @classmethod
    def failed(
        cls,
        version_id: VersionId,
        reason: str,
        error: ReaperError | None = None,
    ) -> Self:
        return cls(
            version_id=version_id,
            status=DeletionStatus.FAILED,
            reason=reason,
            error=error,
        )

    @property
    def is_failure(self) -> bool:
        return self.status == DeletionStatus.FAILED

    def __str__(self) -> str:
        if self.reason:
            return f"{self.version_id}: {self.status.value} ({self.reason})"
        return f"{self.version_id}: {self.status.value}"


@dataclass
class PackageCleanupResult:
    """Everything that happened while cleaning one package.

    ``outcomes`` is in the order the versions appeared in the listing,
    regardless of the order deletions completed in.
    """

    package_name: str
    state: PackageState = PackageState.PENDING
    total_versions: int = 0
    untagged_count: int = 0
    outcomes: list[DeletionOutcome] = field(default_factory=list)
    error: ReaperError | None = None

    @property
    def failures(self) -> list[DeletionOutcome]:
        return [x for x in self.outcomes if x.is_failure]

    @property
    def succeeded(self) -> bool:
        return self.state == PackageState.DONE and not self.failures

    def count(self, status: DeletionStatus) -> int:
        return len([x for x in self.outcomes if x.status == status])


@dataclass
class RunSummary:
    """Results for every requested package, in request order."""

    results: list[PackageCleanupResult] = field(default_factory=list)
    fatal: AuthError | None = None
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return (
            self.fatal is None
            and not self.cancelled
            and all(x.succeeded for x in self.results)
        )

    @property
    def exit_code(self) -> ExitCode:
        if self.fatal is not None:
            return ExitCode.AUTH_ERROR
        if self.cancelled:
            return ExitCode.INTERRUPTED
        if self.succeeded:
            return ExitCode.SUCCESS
        return ExitCode.PARTIAL_FAILURE
