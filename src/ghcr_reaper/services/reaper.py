"""Provides cleanup of untagged versions for a set of packages."""

import asyncio
from collections.abc import Sequence

import structlog
from structlog.stdlib import BoundLogger

from ..exceptions import AuthError, ReaperError
from ..models.owner import OwnerScope
from ..models.result import (
    DeletionStatus,
    PackageCleanupResult,
    PackageState,
    RunSummary,
)
from .classifier import classify
from .executor import DeletionExecutor
from .lister import VersionLister


def _auth_error(result: PackageCleanupResult) -> AuthError | None:
    if isinstance(result.error, AuthError):
        return result.error
    for outcome in result.outcomes:
        if isinstance(outcome.error, AuthError):
            return outcome.error
    return None


class Reaper:
    """Clean the untagged versions of a single package.

    The package moves through ``PENDING``, ``LISTING``, ``CLASSIFYING``,
    ``DELETING`` and ``DONE``.  Only a listing failure ends in ``FAILED``;
    a failed deletion is recorded in the outcomes and the rest continue.
    """

    def __init__(
        self,
        scope: OwnerScope,
        package_name: str,
        *,
        lister: VersionLister,
        executor: DeletionExecutor,
        dry_run: bool = False,
    ) -> None:
        self._scope = scope
        self._dry_run = dry_run
        self._lister = lister
        self._executor = executor
        self.name = package_name
        self.result = PackageCleanupResult(package_name=package_name)
        self._logger = structlog.get_logger(__name__).bind(
            owner=str(scope), package=package_name
        )

    @property
    def state(self) -> PackageState:
        return self.result.state

    async def reap(self) -> PackageCleanupResult:
        result = self.result
        self._logger.info("Cleaning package", dry_run=self._dry_run)
        result.state = PackageState.LISTING
        try:
            versions = await self._lister.list_versions(self._scope, self.name)
        except ReaperError as e:
            result.state = PackageState.FAILED
            result.error = e
            self._logger.error("Failed to list versions", error=str(e))
            return result

        result.state = PackageState.CLASSIFYING
        classified = classify(versions)
        result.total_versions = classified.total
        result.untagged_count = len(classified.untagged)
        self._logger.info(
            "Classified versions",
            total=result.total_versions,
            tagged=len(classified.tagged),
            untagged=result.untagged_count,
        )

        result.state = PackageState.DELETING
        result.outcomes = await self._executor.delete_versions(
            self._scope, self.name, classified.untagged, dry_run=self._dry_run
        )
        result.state = PackageState.DONE
        self._log_summary()
        return result

    def _log_summary(self) -> None:
        result = self.result
        log = self._logger.bind(
            total=result.total_versions,
            untagged=result.untagged_count,
            deleted=result.count(DeletionStatus.DELETED),
            skipped=result.count(DeletionStatus.SKIPPED_DRY_RUN),
            failed=len(result.failures),
        )
        if result.failures:
            log.warning("Finished package with failures")
        else:
            log.info("Finished package")


class BuckDharma:
    """Buck Dharma is in charge of all the Reapers.

    One `Reaper` runs per requested package, all concurrently.  Deletion
    concurrency is bounded by the shared executor.  `cancel` stops new
    listing and deletion calls; calls already in flight complete and the
    partial results are still returned.  An authentication failure in any
    package cancels the rest of the run the same way.
    """

    def __init__(
        self,
        scope: OwnerScope,
        packages: Sequence[str],
        *,
        lister: VersionLister,
        executor: DeletionExecutor,
        cancelled: asyncio.Event,
        dry_run: bool = False,
        logger: BoundLogger | None = None,
    ) -> None:
        self._scope = scope
        self._dry_run = dry_run
        self._cancelled = cancelled
        self._interrupted = False
        self._logger = logger or structlog.get_logger(__name__)
        self.reapers = [
            Reaper(
                scope,
                name,
                lister=lister,
                executor=executor,
                dry_run=dry_run,
            )
            for name in packages
        ]
        self.summary: RunSummary | None = None

    def cancel(self) -> None:
        """Stop starting new calls.  Safe to call more than once."""
        if not self._interrupted:
            self._logger.warning("Cancellation requested; finishing up")
        self._interrupted = True
        self._cancelled.set()

    async def run(self) -> RunSummary:
        """Clean every package and summarize the results.

        Results come back in the order the packages were requested.
        """
        summary = RunSummary()
        results = await asyncio.gather(
            *(self._reap(r, summary) for r in self.reapers)
        )
        summary.results = list(results)
        summary.cancelled = self._interrupted
        self.summary = summary
        self._logger.info(
            "Run complete",
            owner=str(self._scope),
            packages=len(summary.results),
            succeeded=len([x for x in summary.results if x.succeeded]),
            exit_code=int(summary.exit_code),
        )
        return summary

    async def _reap(
        self, reaper: Reaper, summary: RunSummary
    ) -> PackageCleanupResult:
        result = await reaper.reap()
        auth_error = _auth_error(result)
        if auth_error is not None:
            if summary.fatal is None:
                summary.fatal = auth_error
                self._logger.error(
                    "Credential rejected; abandoning remaining work",
                    error=str(auth_error),
                )
            self._cancelled.set()
        return result

    def report(self) -> None:
        """Print what happened (or would happen) to each package."""
        if self.summary is None:
            self._logger.warning("Nothing has been run, so nothing to report.")
            return
        dry = " (dry run)" if self._dry_run else ""
        for result in self.summary.results:
            headline = (
                f"Untagged versions for {self._scope}/{result.package_name}"
                f"{dry}:"
            )
            print(headline)
            print("-" * len(headline))
            if result.state == PackageState.FAILED:
                print(f"FAILED: {result.error}")
            else:
                print(
                    f"{result.untagged_count} untagged of"
                    f" {result.total_versions} versions"
                )
                ids = [str(x.version_id) for x in result.outcomes]
                maxlen = max([len(x) for x in ids], default=0)
                for vid, outcome in zip(ids, result.outcomes, strict=True):
                    line = f"{vid}{' ' * (maxlen + 1 - len(vid))} "
                    line += outcome.status.value
                    if outcome.reason:
                        line += f": {outcome.reason}"
                    print(line)
            print("\n")
        if self.summary.fatal is not None:
            print(f"Aborted: {self.summary.fatal}")
