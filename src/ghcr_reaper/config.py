"""Configuration for the reaper of untagged package versions."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Any, Self

import yaml
from pydantic import (
    BeforeValidator,
    Field,
    HttpUrl,
    SecretStr,
    ValidationError,
    model_validator,
)
from safir.pydantic import (
    CamelCaseModel,
    to_camel_case,
    validate_exactly_one_of,
)

from .exceptions import ConfigurationError
from .models.owner import OwnerScope, resolve_owner_scope

__all__ = [
    "TOKEN_ENV_VARS",
    "ReaperConfig",
    "RetryConfig",
    "resolve_token",
]

TOKEN_ENV_VARS = ("GITHUB_TOKEN", "GHCR_TOKEN")
"""Environment variables searched, in order, for the GitHub token."""


def _empty_str_is_none(inp: Any) -> Any:
    if isinstance(inp, str) and inp == "":
        return None
    return inp


class RetryConfig(CamelCaseModel):
    """How hard to try when the registry rate-limits or fails."""

    max_attempts: Annotated[
        int,
        Field(
            title="Maximum attempts",
            description=(
                "Total attempts per call (including the first) before the"
                " call is given up as a transient failure."
            ),
            ge=1,
        ),
    ] = 5

    backoff_base: Annotated[
        float,
        Field(
            title="Backoff base",
            description=(
                "Seconds to wait after the first server error; doubles with"
                " each further attempt."
            ),
            ge=0,
        ),
    ] = 1.0

    backoff_max: Annotated[
        float,
        Field(
            title="Backoff maximum",
            description="Longest wait, in seconds, after a server error.",
            ge=0,
        ),
    ] = 30.0

    max_wait: Annotated[
        float,
        Field(
            title="Maximum rate-limit wait",
            description=(
                "Longest wait, in seconds, honored from a rate-limit hint."
            ),
            ge=0,
        ),
    ] = 300.0


class ReaperConfig(CamelCaseModel):
    """Configuration to clean untagged versions of some packages."""

    organization: Annotated[
        str | None,
        BeforeValidator(_empty_str_is_none),
        Field(
            title="Organization",
            description="Organization owning the packages",
            examples=["lsst-sqre"],
        ),
    ] = None

    user: Annotated[
        str | None,
        BeforeValidator(_empty_str_is_none),
        Field(
            title="User",
            description="User owning the packages",
            examples=["fbooth"],
        ),
    ] = None

    packages: Annotated[
        list[str],
        Field(
            title="Packages",
            description="Container packages to clean",
            examples=[["sciplat-lab"]],
            min_length=1,
        ),
    ]

    token: Annotated[
        SecretStr | None,
        Field(
            title="Token",
            description="GitHub token with delete:packages scope",
        ),
    ] = None

    dry_run: Annotated[
        bool,
        Field(
            title="Dry run",
            description="List and classify, but do not delete any versions.",
        ),
    ] = False

    debug: Annotated[
        bool,
        Field(
            title="Debug",
            description="Much more verbose logging.",
        ),
    ] = False

    api_url: Annotated[
        HttpUrl,
        Field(
            title="API URL",
            description="Base URL of the GitHub REST API",
            examples=[HttpUrl("https://api.github.com")],
        ),
    ] = HttpUrl("https://api.github.com")

    page_size: Annotated[
        int,
        Field(
            title="Page size",
            description="Versions requested per page when listing",
            ge=1,
            le=100,
        ),
    ] = 100

    concurrency: Annotated[
        int,
        Field(
            title="Concurrency",
            description="Maximum deletion calls in flight at once",
            ge=1,
        ),
    ] = 8

    timeout: Annotated[
        float,
        Field(
            title="Timeout",
            description="HTTP timeout in seconds",
            gt=0,
        ),
    ] = 30.0

    retry: Annotated[
        RetryConfig,
        Field(
            title="Retry",
            description="Retry and backoff policy for registry calls",
            default_factory=RetryConfig,
        ),
    ]

    _validate_owner = model_validator(mode="after")(
        validate_exactly_one_of("organization", "user")
    )

    @property
    def owner_scope(self) -> OwnerScope:
        return resolve_owner_scope(
            organization=self.organization, user=self.user
        )

    @classmethod
    def load(
        cls,
        path: Path | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> Self:
        """Load configuration from an optional YAML file plus overrides.

        Overrides whose value is `None` are ignored.  Supplying either
        owner as an override replaces both owners from the file.

        Raises
        ------
        ConfigurationError
            Raised if the file cannot be read or the result is invalid.
        """
        data: dict[str, Any] = {}
        if path is not None:
            try:
                loaded = yaml.safe_load(path.read_text())
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(
                    f"Cannot load config file {path}: {e}"
                ) from e
            if loaded is not None and not isinstance(loaded, dict):
                raise ConfigurationError(
                    f"Config file {path} does not contain a mapping"
                )
            data = loaded or {}
        updates = {k: v for k, v in (overrides or {}).items() if v is not None}
        if "organization" in updates or "user" in updates:
            for owner in ("organization", "user"):
                data.pop(owner, None)
        for key, value in updates.items():
            data.pop(to_camel_case(key), None)
            data[key] = value
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_file(cls, path: Path) -> Self:
        return cls.load(path)


def resolve_token(
    token_file: Path | None = None,
    configured: SecretStr | None = None,
    environ: Mapping[str, str] | None = None,
) -> SecretStr:
    """Find the GitHub token.

    Search order: the token file, the configured token, then each of
    `TOKEN_ENV_VARS`.

    Raises
    ------
    ConfigurationError
        Raised if the token file is unreadable or no token was found.
    """
    if token_file is not None:
        try:
            token = token_file.read_text().strip()
        except OSError as e:
            raise ConfigurationError(
                f"Failed to read the GitHub token from {token_file}: {e}"
            ) from e
        if not token:
            raise ConfigurationError(f"Token file {token_file} is empty")
        return SecretStr(token)
    if configured is not None and configured.get_secret_value():
        return configured
    env = os.environ if environ is None else environ
    for var in TOKEN_ENV_VARS:
        if env.get(var):
            return SecretStr(env[var])
    raise ConfigurationError(
        "No GitHub token provided via --token, the config file, or "
        + " or ".join(TOKEN_ENV_VARS)
    )
