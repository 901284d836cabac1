"""List every version of a package, one page at a time."""

import asyncio
from collections.abc import AsyncIterator
from typing import Protocol

import structlog
from structlog.stdlib import BoundLogger

from ..exceptions import CancelledRunError
from ..models.owner import OwnerScope
from ..models.version import VersionPage, VersionRecord
from .retry import RetryPolicy

__all__ = ["PageSource", "VersionLister", "VersionPager"]


class PageSource(Protocol):
    """Anything that can fetch one page of a package's versions."""

    async def fetch_page(
        self, scope: OwnerScope, package_name: str, page: int
    ) -> VersionPage: ...


class VersionPager:
    """Lazy, restartable sequence of the pages of one package's versions.

    Each ``async for`` starts again at the first page.  Page N+1 is not
    requested until page N has arrived and named it as its successor, and
    iteration stops after an empty page or one without a successor.  If
    ``cancelled`` is set, no further page is requested, nor is a failed
    page retried.
    """

    def __init__(
        self,
        source: PageSource,
        retry: RetryPolicy,
        scope: OwnerScope,
        package_name: str,
        *,
        cancelled: asyncio.Event | None = None,
    ) -> None:
        self._source = source
        self._retry = retry
        self._scope = scope
        self._package = package_name
        self._cancelled = cancelled

    def __aiter__(self) -> AsyncIterator[VersionPage]:
        return self._pages()

    async def _pages(self) -> AsyncIterator[VersionPage]:
        page_number: int | None = 1
        while page_number is not None:
            if self._cancelled is not None and self._cancelled.is_set():
                raise CancelledRunError(
                    "Cancelled while listing versions", package=self._package
                )
            current = page_number
            page = await self._retry.run(
                lambda: self._source.fetch_page(
                    self._scope, self._package, current
                ),
                package=self._package,
                cancelled=self._cancelled,
            )
            yield page
            page_number = None if page.is_last else page.next_page


class VersionLister:
    """Produce the complete version list for a package."""

    def __init__(
        self,
        source: PageSource,
        retry: RetryPolicy,
        *,
        cancelled: asyncio.Event | None = None,
        logger: BoundLogger | None = None,
    ) -> None:
        self._source = source
        self._retry = retry
        self._cancelled = cancelled
        self._logger = logger or structlog.get_logger(__name__)

    def pager(self, scope: OwnerScope, package_name: str) -> VersionPager:
        return VersionPager(
            self._source,
            self._retry,
            scope,
            package_name,
            cancelled=self._cancelled,
        )

    async def list_versions(
        self, scope: OwnerScope, package_name: str
    ) -> list[VersionRecord]:
        """Fetch all pages and concatenate them in fetch order.

        Raises
        ------
        PackageNotFoundError
            Raised if the package does not exist.
        AuthError
            Raised if the token was rejected.
        TransientError
            Raised if a page could not be fetched within the retry policy.
        """
        versions: list[VersionRecord] = []
        count = 0
        async for page in self.pager(scope, package_name):
            count += 1
            versions.extend(page.versions)
            self._logger.debug(
                "Fetched page",
                owner=str(scope),
                package=package_name,
                page=page.number,
                page_count=count,
                versions=len(page.versions),
            )
        self._logger.info(
            f"Found {len(versions)} versions",
            owner=str(scope),
            package=package_name,
            page_count=count,
        )
        return versions
