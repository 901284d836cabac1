"""Delete untagged package versions."""

import asyncio
from collections.abc import Sequence
from typing import Protocol

import structlog
from structlog.stdlib import BoundLogger

from ..exceptions import AuthError, CancelledRunError, ReaperError
from ..models.owner import OwnerScope
from ..models.result import DeletionOutcome
from ..models.version import VersionId, VersionRecord
from .retry import RetryPolicy

__all__ = ["DeletionExecutor", "VersionDeleter"]


class VersionDeleter(Protocol):
    """Anything that can delete one package version."""

    async def delete_version(
        self, scope: OwnerScope, package_name: str, version_id: VersionId
    ) -> bool: ...


class DeletionExecutor:
    """Issue one deletion per untagged version.

    Failures never escape: each version yields exactly one
    `DeletionOutcome`.  The semaphore caps deletions in flight across every
    package sharing this executor; a version waiting to retry does not
    hold a slot.

    Parameters
    ----------
    deleter
        Storage client that performs the actual deletion.
    retry
        Policy for rate-limited and failed calls.
    concurrency
        Maximum deletion calls in flight at once.
    cancelled
        Once set, no new deletion call is started.
    """

    def __init__(
        self,
        deleter: VersionDeleter,
        retry: RetryPolicy,
        *,
        concurrency: int = 8,
        cancelled: asyncio.Event | None = None,
        logger: BoundLogger | None = None,
    ) -> None:
        self._deleter = deleter
        self._retry = retry
        self._semaphore = asyncio.Semaphore(concurrency)
        self._cancelled = cancelled or asyncio.Event()
        self._logger = logger or structlog.get_logger(__name__)

    async def delete_version(
        self,
        scope: OwnerScope,
        package_name: str,
        version_id: VersionId,
        *,
        dry_run: bool,
        digest: str | None = None,
    ) -> DeletionOutcome:
        log = self._logger.bind(
            owner=str(scope),
            package=package_name,
            version_id=version_id,
            digest=digest,
        )
        if dry_run:
            log.info("Would delete version (dry run)")
            return DeletionOutcome.skipped_dry_run(version_id)
        try:
            deleted = await self._retry.run(
                lambda: self._attempt(scope, package_name, version_id),
                package=package_name,
                version_id=version_id,
                cancelled=self._cancelled,
            )
        except CancelledRunError as e:
            log.warning("Skipped deletion", reason=e.message)
            return DeletionOutcome.failed(version_id, e.message, e)
        except ReaperError as e:
            log.error("Failed to delete version", reason=str(e))
            if isinstance(e, AuthError):
                # No point trying anything else with this credential
                self._cancelled.set()
            return DeletionOutcome.failed(version_id, str(e), e)
        if deleted:
            log.info("Deleted version")
        else:
            log.warning("Version was already deleted")
        return DeletionOutcome.deleted(version_id)

    async def _attempt(
        self, scope: OwnerScope, package_name: str, version_id: VersionId
    ) -> bool:
        # A slot is held only for the call itself, never across a retry wait
        async with self._semaphore:
            if self._cancelled.is_set():
                raise CancelledRunError(
                    "Cancelled before deletion was attempted",
                    package=package_name,
                    version_id=version_id,
                )
            return await self._deleter.delete_version(
                scope, package_name, version_id
            )

    async def delete_versions(
        self,
        scope: OwnerScope,
        package_name: str,
        versions: Sequence[VersionRecord],
        *,
        dry_run: bool,
    ) -> list[DeletionOutcome]:
        """Delete several versions concurrently.

        Outcomes come back in the order of ``versions``.
        """
        return list(
            await asyncio.gather(
                *(
                    self.delete_version(
                        scope,
                        package_name,
                        v.id,
                        dry_run=dry_run,
                        digest=v.name or None,
                    )
                    for v in versions
                )
            )
        )
