"""Repository content sources and file filtering."""

from __future__ import annotations

from ..config import ContentSettings
from ..errors import ConfigurationError
from ..models import RepoCoordinates
from .base import ContentSource, directories_of
from .filters import FileFilter, detect_language
from .github import GitHubContentSource
from .local import LocalContentSource
from .technology import detect_technology


def build_content_source(
    settings: ContentSettings, coordinates: RepoCoordinates
) -> ContentSource:
    """Instantiate the configured content source for ``coordinates``."""
    if not coordinates.repository:
        raise ConfigurationError("No repository specified")
    file_filter = FileFilter.from_settings(settings)
    if settings.source == "github":
        return GitHubContentSource(
            coordinates.repository,
            settings.github_token,
            api_base=settings.github_api_base,
            file_filter=file_filter,
        )
    return LocalContentSource(coordinates.repository, file_filter=file_filter)


__all__ = [
    "ContentSource",
    "FileFilter",
    "GitHubContentSource",
    "LocalContentSource",
    "build_content_source",
    "detect_language",
    "detect_technology",
    "directories_of",
]
