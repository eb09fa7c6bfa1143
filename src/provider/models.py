"""Value types shared by every source."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Mapping, Tuple, Union

from packaging.version import InvalidVersion
from packaging.version import Version as ReleaseVersion

from constants import ArchiveKinds

if TYPE_CHECKING:  # pragma: no cover
    from provider.base import Provider

_RELEASE_PREFIX = re.compile(r"\d+(?:\.\d+)*")

VersionKey = Tuple[ReleaseVersion, int, str]


@dataclass(frozen=True)
class Candidate:
    """Identity of a tool as advertised by one source.

    ``metadata`` accepts any mapping and is stored as a sorted tuple of pairs
    so candidates stay hashable and usable as dictionary keys.
    """

    id: str
    display_name: str
    description: str
    homepage_url: str
    metadata: Tuple[Tuple[str, str], ...] = field(default=())

    def __post_init__(self):
        if isinstance(self.metadata, Mapping):
            object.__setattr__(self, "metadata", tuple(sorted(self.metadata.items())))

    @property
    def hints(self) -> Dict[str, str]:
        """Metadata as a plain dictionary."""
        return dict(self.metadata)


@dataclass(frozen=True)
class Version:
    """One concrete installable build of a candidate.

    ``identifier`` is what the owning source needs to download or resolve the
    build, ``version`` is the human facing one.
    """

    vendor: str
    version: str
    distribution_tag: str
    identifier: str

    def sort_key(self) -> VersionKey:
        return version_sort_key(self.version)


def version_sort_key(value: str) -> VersionKey:
    """Order versions with PEP 440 semantics.

    ``3.9.6-rc-1`` sorts before ``3.9.6``. Strings ``packaging`` rejects, such
    as ``21-zulu`` or ``17.0.10.fx``, are ranked by their leading release
    numbers, just below a parsable version with the same numbers, then by the
    raw string.
    """
    value = value or ""
    try:
        return ReleaseVersion(value), 1, ""
    except InvalidVersion:
        prefix = _RELEASE_PREFIX.match(value)
        return ReleaseVersion(prefix.group(0) if prefix else "0"), 0, value


@dataclass(frozen=True)
class Archive:
    """A downloaded distribution waiting to be unpacked."""

    kind: Union[ArchiveKinds, str]
    location: Path


@dataclass(frozen=True)
class MatchedVersion:
    """Result of a successful resolution."""

    provider: "Provider"
    candidate: Candidate
    version: Version
