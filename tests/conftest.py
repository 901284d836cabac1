"""Test fixtures for the untagged version reaper."""

from collections.abc import AsyncIterator, Iterator
from pathlib import Path
from tempfile import TemporaryDirectory

import pytest
import pytest_asyncio
import yaml
from pydantic import SecretStr

from ghcr_reaper.config import ReaperConfig
from ghcr_reaper.factory import Factory
from ghcr_reaper.models.owner import Organization
from ghcr_reaper.services.retry import RetryPolicy

from support.registry import TOKEN, FakeRegistry, make_version


@pytest.fixture
def registry() -> FakeRegistry:
    """Registry for lsst-sqre holding the "app" package.

    ``app`` has versions 1 and 3 untagged, and 2 tagged ``latest``.
    """
    reg = FakeRegistry()
    reg.add_package(
        "app",
        [make_version(1), make_version(2, ["latest"]), make_version(3)],
    )
    return reg


@pytest.fixture
def scope() -> Organization:
    return Organization(name="lsst-sqre")


@pytest.fixture
def token() -> SecretStr:
    return SecretStr(TOKEN)


@pytest.fixture
def retry() -> RetryPolicy:
    """Retry policy that never sleeps."""
    return RetryPolicy.immediate(max_attempts=3)


@pytest.fixture
def reaper_config() -> ReaperConfig:
    """Config cleaning "app" for real."""
    return ReaperConfig(
        organization="lsst-sqre", packages=["app"], dry_run=False, debug=True
    )


@pytest_asyncio.fixture
async def factory(
    reaper_config: ReaperConfig,
    token: SecretStr,
    registry: FakeRegistry,
    retry: RetryPolicy,
) -> AsyncIterator[Factory]:
    """Factory talking to the fake registry."""
    async with Factory.standalone(
        reaper_config, token, transport=registry.transport, retry=retry
    ) as factory:
        yield factory


@pytest.fixture
def config_file() -> Iterator[Path]:
    """YAML configuration file, with camelCase keys."""
    with TemporaryDirectory() as td:
        path = Path(td) / "config.yaml"
        config = {
            "organization": "lsst-sqre",
            "packages": ["app", "sciplat-lab"],
            "dryRun": True,
            "pageSize": 50,
            "retry": {"maxAttempts": 7, "backoffBase": 0.5},
        }
        path.write_text(yaml.dump(config))
        yield path
