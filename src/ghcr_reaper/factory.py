"""Component factory."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import aclosing, asynccontextmanager
from importlib import metadata
from typing import Self

import httpx
import structlog
from pydantic import SecretStr
from structlog.stdlib import BoundLogger

from .config import ReaperConfig
from .services.executor import DeletionExecutor
from .services.lister import VersionLister
from .services.reaper import BuckDharma
from .services.retry import RetryPolicy
from .storage.ghcr import GhcrClient


def _user_agent() -> str:
    try:
        return f"ghcr-reaper/{metadata.version('ghcr-reaper')}"
    except metadata.PackageNotFoundError:
        return "ghcr-reaper"


def configure_logging(*, debug: bool) -> None:
    """Set the structlog level for the whole process."""
    log_level = logging.DEBUG if debug else logging.INFO
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(log_level)
    )


class Factory:
    """Build reaper components.

    All components share one HTTP client and one cancellation event.  The
    factory owns the HTTP client and closes it in `aclose`.

    Parameters
    ----------
    config
        Reaper configuration.
    token
        GitHub token, already resolved.
    logger
        Logger to use for messages.
    transport
        HTTP transport override, used by the test suite.
    retry
        Retry policy override; by default it is built from the config.
    """

    @classmethod
    @asynccontextmanager
    async def standalone(
        cls,
        config: ReaperConfig,
        token: SecretStr,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        retry: RetryPolicy | None = None,
    ) -> AsyncIterator[Self]:
        """Async context manager for reaper components.

        Parameters
        ----------
        config
            Reaper configuration.
        token
            GitHub token.
        transport
            HTTP transport override.
        retry
            Retry policy override.

        Yields
        ------
        Factory
            Newly-created factory.  Its HTTP client is closed on exit.
        """
        logger = structlog.get_logger(__name__)
        factory = cls(
            config, token, logger=logger, transport=transport, retry=retry
        )
        async with aclosing(factory):  # type: ignore[type-var]
            yield factory

    def __init__(
        self,
        config: ReaperConfig,
        token: SecretStr,
        *,
        logger: BoundLogger,
        transport: httpx.AsyncBaseTransport | None = None,
        retry: RetryPolicy | None = None,
    ) -> None:
        self._config = config
        self._logger = logger
        self._http_client = httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(config.timeout),
            headers={"User-Agent": _user_agent()},
        )
        self._storage = GhcrClient(
            self._http_client,
            api_url=str(config.api_url),
            page_size=config.page_size,
        )
        self._storage.authenticate(token)
        self._retry = retry or RetryPolicy.from_config(config.retry)
        self._cancelled = asyncio.Event()

    async def aclose(self) -> None:
        await self._http_client.aclose()

    @property
    def storage(self) -> GhcrClient:
        return self._storage

    def create_version_lister(self) -> VersionLister:
        return VersionLister(
            self._storage, self._retry, cancelled=self._cancelled
        )

    def create_deletion_executor(self) -> DeletionExecutor:
        return DeletionExecutor(
            self._storage,
            self._retry,
            concurrency=self._config.concurrency,
            cancelled=self._cancelled,
        )

    def create_buck_dharma(self) -> BuckDharma:
        return BuckDharma(
            self._config.owner_scope,
            self._config.packages,
            lister=self.create_version_lister(),
            executor=self.create_deletion_executor(),
            cancelled=self._cancelled,
            dry_run=self._config.dry_run,
            logger=self._logger,
        )
