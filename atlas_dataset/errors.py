"""
Exceptions raised by the dataset build and artifact loading.
Runtime lookups never raise these; unknown names and ids are "not found".
"""

from __future__ import annotations


class AtlasError(Exception):
    """Base class for every atlas_dataset failure."""


class SourceFetchError(AtlasError):
    """Raw source data could not be fetched. Fatal for the build."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.reason = reason


class ArtifactIntegrityError(AtlasError):
    """An assembled artifact violates a build-time invariant."""


class ArtifactLoadError(AtlasError):
    """An artifact file is missing, unreadable or fails its checksum."""


class OverrideConfigError(AtlasError):
    """The manual override table is malformed."""
