"""Model for the package version records returned by the registry."""

import datetime
from dataclasses import dataclass, field
from typing import Any, Self

from ..exceptions import RegistryResponseError

__all__ = ["VersionId", "VersionPage", "VersionRecord"]

type VersionId = int | str


def _parse_date(inp: Any) -> datetime.datetime | None:
    if not inp or not isinstance(inp, str):
        return None
    # GHCR reports UTC with a trailing 'Z' and no fractional seconds
    date = datetime.datetime.fromisoformat(inp.replace("Z", "+00:00"))
    if date.tzinfo is None:
        date = date.replace(tzinfo=datetime.UTC)
    return date.astimezone(tz=datetime.UTC)


@dataclass(frozen=True)
class VersionRecord:
    """One stored version (manifest) of a container package.

    The ``id`` is the registry-assigned key used for deletion; ``name`` is
    the manifest digest, which is what humans recognize.
    """

    id: VersionId
    name: str = ""
    tags: tuple[str, ...] = ()
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None

    @property
    def is_untagged(self) -> bool:
        return not self.tags

    def __str__(self) -> str:
        dig = self.name
        colon_pos = dig.find(":")
        if colon_pos > -1:
            dig = dig[1 + colon_pos :]
        if len(dig) > 12:
            dig = dig[:12] + "..."
        tags = ",".join(self.tags) if self.tags else "<untagged>"
        return f"[{tags}] {self.id} <{dig}>"

    @classmethod
    def from_api(cls, inp: Any, *, package: str | None = None) -> Self:
        """Build a record from one object of the list-versions response.

        Tags live at ``metadata.container.tags``; a missing block means the
        version has no tags.

        Raises
        ------
        RegistryResponseError
            Raised if the object has no usable ``id``, or if the tag block
            is present but not shaped as a map holding a list of tags.
        """
        if not isinstance(inp, dict):
            raise RegistryResponseError(
                f"Version entry {inp!r} is not a map", package=package
            )
        version_id = inp.get("id")
        if version_id is None or isinstance(version_id, bool):
            raise RegistryResponseError(
                f"Version entry {inp!r} has no id", package=package
            )
        if not isinstance(version_id, int | str):
            raise RegistryResponseError(
                f"Version entry id {version_id!r} is not an integer or string",
                package=package,
            )
        metadata = inp.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise RegistryResponseError(
                f"Metadata {metadata!r} is not a map",
                package=package,
                version_id=version_id,
            )
        container = metadata.get("container") or {}
        if not isinstance(container, dict):
            raise RegistryResponseError(
                f"Container metadata {container!r} is not a map",
                package=package,
                version_id=version_id,
            )
        tags = container.get("tags") or []
        if not isinstance(tags, list):
            raise RegistryResponseError(
                f"Tags {tags!r} are not a list",
                package=package,
                version_id=version_id,
            )
        return cls(
            id=version_id,
            name=str(inp.get("name") or ""),
            tags=tuple(str(t) for t in tags),
            created_at=_parse_date(inp.get("created_at")),
            updated_at=_parse_date(inp.get("updated_at")),
        )


@dataclass
class VersionPage:
    """One page of the list-versions response.

    ``next_page`` is the continuation cursor; ``None`` means this was the
    last page.
    """

    number: int
    versions: list[VersionRecord] = field(default_factory=list)
    next_page: int | None = None

    @property
    def is_last(self) -> bool:
        return self.next_page is None or not self.versions
