"""Split a package's versions into tagged and untagged."""

from collections.abc import Iterable
from dataclasses import dataclass, field

from ..models.version import VersionRecord

__all__ = ["Classification", "classify"]


@dataclass
class Classification:
    """A package's versions, partitioned.  Each side keeps listing order."""

    tagged: list[VersionRecord] = field(default_factory=list)
    untagged: list[VersionRecord] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.tagged) + len(self.untagged)


def classify(versions: Iterable[VersionRecord]) -> Classification:
    """A version is untagged if and only if it has no tags at all.

    Call this once per package, with the complete listing.
    """
    result = Classification()
    for version in versions:
        if version.is_untagged:
            result.untagged.append(version)
        else:
            result.tagged.append(version)
    return result
