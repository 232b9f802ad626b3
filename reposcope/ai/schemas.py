"""Pydantic models for the JSON documents returned by the model."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FileSummaryPayload(BaseModel):
    path: str
    summary: str
    features: List[str] = Field(default_factory=list)
    exports: List[str] = Field(default_factory=list)


class UnitSummaryPayload(BaseModel):
    files: List[FileSummaryPayload]
    summary: str
    features: List[str] = Field(default_factory=list)


class DirectorySummaryPayload(BaseModel):
    summary: str
    features: List[str] = Field(default_factory=list)


class FeaturePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str
    related_files: List[str] = Field(default_factory=list, alias="relatedFiles")


class FinalSummaryPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    overview: str
    features: List[FeaturePayload]
    architecture: str
    dependencies: List[str]
    api_endpoints: Optional[List[str]] = Field(default=None, alias="apiEndpoints")


__all__ = [
    "DirectorySummaryPayload",
    "FeaturePayload",
    "FileSummaryPayload",
    "FinalSummaryPayload",
    "UnitSummaryPayload",
]
