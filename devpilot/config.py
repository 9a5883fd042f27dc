"""Configuration loading for devpilot (devpilot.yml plus DEVPILOT_* overrides)."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

CONFIG_FILENAME = "devpilot.yml"

DEFAULT_ALLOWED_DOTFILES = (".env.example", ".gitignore", ".github", ".gitlab-ci.yml")
DEFAULT_EXCLUDED_DIRS = (
    "node_modules",
    "vendor",
    "__pycache__",
    ".venv",
    "venv",
    "dist",
    "build",
    "target",
    ".next",
    ".tox",
    ".mypy_cache",
    ".pytest_cache",
    "bower_components",
)


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class ScannerConfig:
    """Exclusion policy for the filesystem scanner."""

    allowed_dotfiles: List[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_DOTFILES))
    excluded_dirs: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDED_DIRS))
    respect_gitignore: bool = False


@dataclass
class LLMConfig:
    """Language model endpoint used by the planner and verifier."""

    model: Optional[str] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    temperature: Optional[float] = 0.1
    max_tokens: Optional[int] = 4000
    request_timeout: Optional[float] = 60.0

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)


@dataclass
class SearchConfig:
    """Deployment documentation search endpoint."""

    base_url: str = "https://api.tavily.com"
    api_key: Optional[str] = None
    max_results: int = 5
    request_timeout: float = 15.0


@dataclass
class MemoryConfig:
    """Long-term interaction memory endpoint."""

    base_url: str = "https://api.mem0.ai/v1"
    api_key: Optional[str] = None
    request_timeout: float = 15.0


@dataclass
class ServiceConfig:
    """HTTP service binding and CORS origin."""

    host: str = "0.0.0.0"
    port: int = 3001
    client_url: str = "http://localhost:5173"


@dataclass
class GenerationConfig:
    """Artifact generation settings."""

    min_confidence: int = 20


@dataclass
class DevPilotConfig:
    """Represents the settings defined in devpilot.yml."""

    scratch_root: Path = field(default_factory=lambda: Path(tempfile.gettempdir()) / "devpilot")
    allowed_host: str = "github.com"
    retention_hours: float = 24.0
    sweep_interval_seconds: float = 3600.0
    failure_policy: str = "continue"
    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    service: ServiceConfig = field(default_factory=ServiceConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)


def load_config(
    config_path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> DevPilotConfig:
    """Load configuration from disk and apply environment overrides."""
    env = os.environ if environ is None else environ
    data: Dict[str, Any] = {}

    if config_path is not None:
        config_file = _resolve_config_path(config_path)
        if config_file.exists():
            data = _read_config(config_file)

    config = DevPilotConfig()

    scratch_root = _as_str(data.get("scratch_root"))
    if scratch_root:
        config.scratch_root = Path(scratch_root).expanduser()
    config.allowed_host = _as_str(data.get("allowed_host")) or config.allowed_host
    config.retention_hours = _as_float(data.get("retention_hours"), config.retention_hours)
    config.sweep_interval_seconds = _as_float(
        data.get("sweep_interval_seconds"), config.sweep_interval_seconds
    )
    config.failure_policy = _normalise_policy(
        _as_str(data.get("failure_policy")) or config.failure_policy
    )

    scanner_data = _as_dict(data.get("scanner"))
    if scanner_data:
        if "allowed_dotfiles" in scanner_data:
            config.scanner.allowed_dotfiles = _as_str_list(scanner_data.get("allowed_dotfiles"))
        if "excluded_dirs" in scanner_data:
            config.scanner.excluded_dirs = _as_str_list(scanner_data.get("excluded_dirs"))
        respect = _as_bool(scanner_data.get("respect_gitignore"))
        if respect is not None:
            config.scanner.respect_gitignore = respect

    llm_data = _as_dict(data.get("llm"))
    if llm_data:
        config.llm = LLMConfig(
            model=_as_str(llm_data.get("model")),
            base_url=_as_str(llm_data.get("base_url")),
            api_key=_as_str(llm_data.get("api_key")),
            temperature=_as_float(llm_data.get("temperature"), config.llm.temperature),
            max_tokens=_as_int(llm_data.get("max_tokens"), config.llm.max_tokens),
            request_timeout=_as_float(llm_data.get("request_timeout"), config.llm.request_timeout),
        )

    search_data = _as_dict(data.get("search"))
    if search_data:
        config.search.base_url = _as_str(search_data.get("base_url")) or config.search.base_url
        config.search.api_key = _as_str(search_data.get("api_key"))
        config.search.max_results = _as_int(search_data.get("max_results"), config.search.max_results) or 5

    memory_data = _as_dict(data.get("memory"))
    if memory_data:
        config.memory.base_url = _as_str(memory_data.get("base_url")) or config.memory.base_url
        config.memory.api_key = _as_str(memory_data.get("api_key"))

    service_data = _as_dict(data.get("service"))
    if service_data:
        config.service.host = _as_str(service_data.get("host")) or config.service.host
        config.service.port = _as_int(service_data.get("port"), config.service.port) or config.service.port
        config.service.client_url = _as_str(service_data.get("client_url")) or config.service.client_url

    generation_data = _as_dict(data.get("generation"))
    if generation_data:
        config.generation.min_confidence = (
            _as_int(generation_data.get("min_confidence"), config.generation.min_confidence) or 0
        )

    _apply_env_overrides(config, env)
    return config


def _apply_env_overrides(config: DevPilotConfig, env: Mapping[str, str]) -> None:
    if env.get("DEVPILOT_SCRATCH_ROOT"):
        config.scratch_root = Path(env["DEVPILOT_SCRATCH_ROOT"]).expanduser()
    if env.get("DEVPILOT_FAILURE_POLICY"):
        config.failure_policy = _normalise_policy(env["DEVPILOT_FAILURE_POLICY"])
    if env.get("DEVPILOT_RETENTION_HOURS"):
        config.retention_hours = _as_float(env["DEVPILOT_RETENTION_HOURS"], config.retention_hours)

    config.llm.model = _first(env, "DEVPILOT_LLM_MODEL", "OPENAI_MODEL") or config.llm.model
    config.llm.base_url = _first(env, "DEVPILOT_LLM_BASE_URL", "OPENAI_BASE_URL") or config.llm.base_url
    config.llm.api_key = (
        _first(env, "DEVPILOT_LLM_API_KEY", "LLAMA_API_KEY", "OPENAI_API_KEY") or config.llm.api_key
    )
    config.search.api_key = _first(env, "DEVPILOT_SEARCH_API_KEY", "TAVILY_API_KEY") or config.search.api_key
    config.memory.api_key = _first(env, "DEVPILOT_MEMORY_API_KEY", "MEM0_API_KEY") or config.memory.api_key

    if env.get("PORT"):
        config.service.port = _as_int(env["PORT"], config.service.port) or config.service.port
    if env.get("CLIENT_URL"):
        config.service.client_url = env["CLIENT_URL"]


def _normalise_policy(value: str) -> str:
    lowered = value.strip().lower()
    if lowered not in {"continue", "abort"}:
        raise ConfigError(f"Unknown failure_policy '{value}'; expected 'continue' or 'abort'")
    return lowered


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
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"{path.name} must contain a mapping at the root")
    return loaded


def _first(env: Mapping[str, str], *keys: str) -> Optional[str]:
    for key in keys:
        value = env.get(key)
        if value:
            return value
    return None


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_float(value: Any, default: Optional[float]) -> Optional[float]:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return default
    return default


def _as_int(value: Any, default: Optional[int]) -> Optional[int]:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return default
    return default


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
