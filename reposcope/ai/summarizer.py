"""Summarizer backed by a chat-completions model returning JSON."""

from __future__ import annotations

import json
from typing import Any, Dict, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..errors import CollaboratorError
from ..logging import get_logger
from ..models import (
    DirectoryResult,
    FeatureDetail,
    FileResult,
    RepoCoordinates,
    TechnologyProfile,
)
from .base import DirectorySummary, FinalSummary, SourceFile, Summarizer, UnitSummary
from .prompts import (
    SYSTEM_PROMPT,
    build_directory_prompt,
    build_final_prompt,
    build_unit_prompt,
)
from .runner import LLMRunner
from .schemas import DirectorySummaryPayload, FinalSummaryPayload, UnitSummaryPayload

P = TypeVar("P", bound=BaseModel)

MISSING_FILE_SUMMARY = "No summary was returned for this file."


class LLMSummarizer(Summarizer):
    """Builds prompts, calls the runner and validates the JSON it returns."""

    def __init__(
        self,
        runner: LLMRunner,
        *,
        max_file_chars: int = 50_000,
        max_config_chars: int = 3_000,
    ) -> None:
        self.runner = runner
        self.max_file_chars = max_file_chars
        self.max_config_chars = max_config_chars
        self.logger = get_logger("ai.summarizer")

    def summarize_unit(
        self,
        files: Sequence[SourceFile],
        directory_path: str,
        technology: TechnologyProfile,
    ) -> UnitSummary:
        prompt = build_unit_prompt(
            files, directory_path, technology, max_file_chars=self.max_file_chars
        )
        response = self.runner.run(prompt, system=SYSTEM_PROMPT, json_mode=True)
        payload = _parse(response.text, UnitSummaryPayload)

        returned = {item.path: item for item in payload.files}
        results = []
        for source in files:
            item = returned.pop(source.path, None)
            if item is None:
                self.logger.warning("Model returned no summary for %s", source.path)
                results.append(
                    FileResult(path=source.path, summary=MISSING_FILE_SUMMARY, language=source.language)
                )
                continue
            results.append(
                FileResult(
                    path=source.path,
                    summary=item.summary,
                    language=source.language,
                    features=list(item.features),
                    exports=list(item.exports),
                )
            )
        if returned:
            self.logger.debug(
                "Ignoring summaries for files outside the unit: %s", ", ".join(sorted(returned))
            )

        directory = DirectoryResult(
            path=directory_path,
            summary=payload.summary,
            features=list(payload.features),
            file_count=len(files),
        )
        return UnitSummary(files=results, directory=directory, usage=response.usage)

    def summarize_directory_from_files(
        self,
        file_results: Sequence[FileResult],
        directory_path: str,
        technology: TechnologyProfile,
    ) -> DirectorySummary:
        prompt = build_directory_prompt(file_results, directory_path, technology)
        response = self.runner.run(prompt, system=SYSTEM_PROMPT, json_mode=True)
        payload = _parse(response.text, DirectorySummaryPayload)
        directory = DirectoryResult(
            path=directory_path,
            summary=payload.summary,
            features=list(payload.features),
            file_count=len(file_results),
        )
        return DirectorySummary(directory=directory, usage=response.usage)

    def synthesize_final(
        self,
        directory_results: Sequence[DirectoryResult],
        technology: TechnologyProfile,
        coordinates: RepoCoordinates,
    ) -> FinalSummary:
        prompt = build_final_prompt(
            directory_results,
            technology,
            coordinates,
            max_config_chars=self.max_config_chars,
        )
        response = self.runner.run(prompt, system=SYSTEM_PROMPT, json_mode=True)
        payload = _parse(response.text, FinalSummaryPayload)
        return FinalSummary(
            overview=payload.overview,
            features=[
                FeatureDetail(
                    name=feature.name,
                    description=feature.description,
                    related_files=list(feature.related_files),
                )
                for feature in payload.features
            ],
            architecture=payload.architecture,
            dependencies=list(payload.dependencies),
            api_endpoints=list(payload.api_endpoints) if payload.api_endpoints is not None else None,
            usage=response.usage,
        )


def _extract_json(text: str) -> Dict[str, Any]:
    text = text.strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end <= start:
            raise CollaboratorError("Model did not return JSON") from None
        try:
            data = json.loads(text[start : end + 1])
        except json.JSONDecodeError as exc:
            raise CollaboratorError(f"Model returned malformed JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise CollaboratorError("Model returned JSON that is not an object")
    return data


def _parse(text: str, schema: Type[P]) -> P:
    data = _extract_json(text)
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        raise CollaboratorError(
            f"Model response does not match {schema.__name__}: {exc.error_count()} errors"
        ) from exc


__all__ = ["LLMSummarizer", "MISSING_FILE_SUMMARY"]
