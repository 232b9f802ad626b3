"""Prompt text for unit, directory and repository summaries."""

from __future__ import annotations

from typing import List, Sequence

from ..models import DirectoryResult, FileResult, RepoCoordinates, TechnologyProfile
from .base import SourceFile

SYSTEM_PROMPT = (
    "You are a senior engineer reviewing an unfamiliar code base. Stay grounded in the "
    "code you are shown, keep summaries short and concrete, and reply with a single JSON "
    "object matching the requested shape."
)

TRUNCATION_MARKER = "\n... (truncated)"


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def _directory_label(directory_path: str) -> str:
    return directory_path or "(root)"


def build_unit_prompt(
    files: Sequence[SourceFile],
    directory_path: str,
    technology: TechnologyProfile,
    *,
    max_file_chars: int,
) -> str:
    blocks: List[str] = []
    for source in files:
        blocks.append(
            f"### {source.path}\n"
            f"Language: {source.language or 'Unknown'}\n"
            f"```\n{truncate(source.content, max_file_chars)}\n```"
        )
    return (
        f"You are analyzing source code for a {technology.technology} project.\n\n"
        "## Directory\n"
        f"- Path: {_directory_label(directory_path)}\n"
        f"- Files: {len(files)}\n\n"
        "## Files\n"
        + "\n\n".join(blocks)
        + "\n\n## Instructions\n"
        "For every file above give a 1-2 sentence summary, its key features and its main "
        "exports. Then summarize the directory as a whole in 2-3 sentences with its key "
        "features.\n\n"
        "Return JSON of the form:\n"
        '{"files": [{"path": string, "summary": string, "features": [string], '
        '"exports": [string]}], "summary": string, "features": [string]}\n'
        "Use each file path exactly as given."
    )


def build_directory_prompt(
    file_results: Sequence[FileResult],
    directory_path: str,
    technology: TechnologyProfile,
) -> str:
    summaries = "\n".join(f"- {result.path}: {result.summary}" for result in file_results)
    features: List[str] = []
    for result in file_results:
        for feature in result.features:
            if feature not in features:
                features.append(feature)
    return (
        f"You are analyzing a folder in a {technology.technology} project.\n\n"
        "## Folder Information\n"
        f"- Path: {_directory_label(directory_path)}\n"
        f"- Files: {len(file_results)}\n\n"
        "## File Summaries\n"
        f"{summaries}\n\n"
        "## Features Found\n"
        f"{', '.join(features) or 'None identified'}\n\n"
        "## Instructions\n"
        "Based on the file summaries above, summarize what this folder does in 2-3 "
        "sentences and list the key features it provides.\n\n"
        'Return JSON of the form: {"summary": string, "features": [string]}'
    )


def build_final_prompt(
    directory_results: Sequence[DirectoryResult],
    technology: TechnologyProfile,
    coordinates: RepoCoordinates,
    *,
    max_config_chars: int,
) -> str:
    summaries = "\n\n".join(
        f"## {_directory_label(result.path)}\n{result.summary}\n"
        f"Features: {', '.join(result.features) or 'None'}"
        for result in directory_results
    )
    if technology.config_content:
        config = f"```\n{technology.config_content[:max_config_chars]}\n```"
    else:
        config = "Not available"
    return (
        "You are creating a comprehensive analysis of a software repository.\n\n"
        "## Repository Information\n"
        f"- Repository: {coordinates.repository}\n"
        f"- Analyzed Path: {coordinates.path or '(root)'}\n"
        f"- Technology: {technology.technology}\n"
        f"- Platforms: {', '.join(technology.platforms)}\n\n"
        "## Configuration File\n"
        f"{config}\n\n"
        "## Folder Summaries\n"
        f"{summaries}\n\n"
        "## Instructions\n"
        "Based on all the information above, provide:\n"
        "1. overview: a detailed overview (3-5 paragraphs) of what the software does\n"
        "2. features: the main features with descriptions and related files\n"
        "3. architecture: an overview of the architecture\n"
        "4. dependencies: the main dependencies and libraries used\n"
        "5. apiEndpoints: API endpoints if this is a backend service (optional)\n\n"
        "Return JSON of the form:\n"
        '{"overview": string, "features": [{"name": string, "description": string, '
        '"relatedFiles": [string]}], "architecture": string, "dependencies": [string], '
        '"apiEndpoints": [string]}'
    )


__all__ = [
    "SYSTEM_PROMPT",
    "TRUNCATION_MARKER",
    "build_directory_prompt",
    "build_final_prompt",
    "build_unit_prompt",
    "truncate",
]
