"""Configuration loading for reposcope (.reposcope.yml)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

from .errors import ConfigurationError

CONFIG_FILENAME = ".reposcope.yml"

DEFAULT_INPUT_PRICE = 0.0000003
DEFAULT_OUTPUT_PRICE = 0.0000025


@dataclass
class ContentSettings:
    """Where repository content comes from and which files are skipped."""

    source: str = "local"
    exclude_dirs: List[str] = field(default_factory=list)
    exclude_patterns: List[str] = field(default_factory=list)
    binary_extensions: List[str] = field(default_factory=list)
    max_workers: int = 8
    github_token: Optional[str] = None
    github_api_base: str = "https://api.github.com"


@dataclass
class LLMSettings:
    """Chat-completions endpoint used for summarization."""

    model: Optional[str] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    temperature: Optional[float] = 0.2
    max_tokens: Optional[int] = None
    request_timeout: Optional[float] = 120.0


@dataclass
class PricingSettings:
    """Per-token prices used to turn token usage into a cost figure."""

    input_price: float = DEFAULT_INPUT_PRICE
    output_price: float = DEFAULT_OUTPUT_PRICE


@dataclass
class StoreSettings:
    """Analysis store backend selection."""

    backend: str = "file"
    directory: Path = Path(".reposcope")


@dataclass
class PipelineSettings:
    """Knobs for the process and summary phases."""

    require_complete: bool = True
    max_file_chars: int = 50_000
    max_config_chars: int = 3_000


@dataclass
class Settings:
    """Represents the settings defined in .reposcope.yml plus environment overrides."""

    root: Path
    content: ContentSettings = field(default_factory=ContentSettings)
    llm: LLMSettings = field(default_factory=LLMSettings)
    pricing: PricingSettings = field(default_factory=PricingSettings)
    store: StoreSettings = field(default_factory=StoreSettings)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)


def load_settings(
    config_path: Path | None = None, *, env: Mapping[str, str] | None = None
) -> Settings:
    """Load settings from disk, then apply environment overrides."""
    environ = os.environ if env is None else env
    config_file = _resolve_config_path(config_path or Path.cwd())
    root = config_file.parent.resolve()

    data: Dict[str, Any] = {}
    if config_file.exists():
        data = _read_config(config_file)

    settings = Settings(root=root)

    content_data = _as_dict(data.get("content"))
    if content_data:
        content = settings.content
        content.source = (_as_str(content_data.get("source")) or content.source).lower()
        content.exclude_dirs = _as_str_list(content_data.get("exclude_dirs"))
        content.exclude_patterns = _as_str_list(content_data.get("exclude_patterns"))
        content.binary_extensions = _as_str_list(content_data.get("binary_extensions"))
        content.max_workers = _as_int(content_data.get("max_workers")) or content.max_workers
        content.github_token = _as_str(content_data.get("github_token"))
        content.github_api_base = (
            _as_str(content_data.get("github_api_base")) or content.github_api_base
        )

    llm_data = _as_dict(data.get("llm"))
    if llm_data:
        llm = settings.llm
        llm.model = _as_str(llm_data.get("model"))
        llm.base_url = _as_str(llm_data.get("base_url"))
        llm.api_key = _as_str(llm_data.get("api_key"))
        temperature = _as_float(llm_data.get("temperature"))
        if temperature is not None:
            llm.temperature = temperature
        llm.max_tokens = _as_int(llm_data.get("max_tokens"))
        timeout = _as_float(llm_data.get("request_timeout"))
        if timeout is not None:
            llm.request_timeout = timeout

    pricing_data = _as_dict(data.get("pricing"))
    if pricing_data:
        input_price = _as_float(pricing_data.get("input_price"))
        output_price = _as_float(pricing_data.get("output_price"))
        if input_price is not None:
            settings.pricing.input_price = input_price
        if output_price is not None:
            settings.pricing.output_price = output_price

    store_data = _as_dict(data.get("store"))
    if store_data:
        backend = _as_str(store_data.get("backend"))
        if backend:
            settings.store.backend = backend.lower()
        directory = _as_str(store_data.get("directory"))
        if directory:
            settings.store.directory = Path(directory)

    pipeline_data = _as_dict(data.get("pipeline"))
    if pipeline_data:
        pipeline = settings.pipeline
        require_complete = _as_bool(pipeline_data.get("require_complete"))
        if require_complete is not None:
            pipeline.require_complete = require_complete
        pipeline.max_file_chars = (
            _as_int(pipeline_data.get("max_file_chars")) or pipeline.max_file_chars
        )
        pipeline.max_config_chars = (
            _as_int(pipeline_data.get("max_config_chars")) or pipeline.max_config_chars
        )

    _apply_environment(settings, environ)

    if settings.content.source not in {"local", "github"}:
        raise ConfigurationError(
            f"Unknown content source '{settings.content.source}' (expected local or github)"
        )
    if settings.store.backend not in {"file", "memory"}:
        raise ConfigurationError(
            f"Unknown store backend '{settings.store.backend}' (expected file or memory)"
        )
    if not settings.store.directory.is_absolute():
        settings.store.directory = root / settings.store.directory

    return settings


def _apply_environment(settings: Settings, env: Mapping[str, str]) -> None:
    token = env.get("REPOSCOPE_GITHUB_TOKEN") or env.get("GITHUB_TOKEN")
    if token:
        settings.content.github_token = token
    source = env.get("REPOSCOPE_CONTENT_SOURCE")
    if source:
        settings.content.source = source.lower()

    store_dir = env.get("REPOSCOPE_STORE_DIR")
    if store_dir:
        settings.store.directory = Path(store_dir)

    input_price = _as_float(env.get("MODEL_INPUT_PRICE"))
    if input_price:
        settings.pricing.input_price = input_price
    output_price = _as_float(env.get("MODEL_OUTPUT_PRICE"))
    if output_price:
        settings.pricing.output_price = output_price

    model = env.get("REPOSCOPE_LLM_MODEL")
    if model:
        settings.llm.model = model
    base_url = env.get("REPOSCOPE_LLM_BASE_URL")
    if base_url:
        settings.llm.base_url = base_url
    api_key = env.get("REPOSCOPE_LLM_API_KEY")
    if api_key:
        settings.llm.api_key = api_key


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Failed to parse {path.name}: {exc}") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigurationError(f"{path.name} must contain a mapping at the root")
    return loaded


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    return str(value) if isinstance(value, (str, int, float)) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


__all__ = [
    "CONFIG_FILENAME",
    "ContentSettings",
    "LLMSettings",
    "PipelineSettings",
    "PricingSettings",
    "Settings",
    "StoreSettings",
    "load_settings",
]
