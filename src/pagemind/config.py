"""pagemind configuration loader.

Priority (high → low):
  1. CLI flags           (handled at the call site, not in this module)
  2. Environment variables  (PAGEMIND_EMBEDDING_MODEL, PAGEMIND_GENERATION_MODEL,
                             PAGEMIND_PROVIDER_URL, PAGEMIND_LOG_LEVEL)
  3. Per-project pagemind.yaml
  4. Global ~/.pagemind/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys or provider tokens; use environment
variables instead (PAGEMIND_PROVIDER_TOKEN, OPENAI_API_KEY, ...).
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".pagemind"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "pagemind.yaml"

# Matches api_key, api-key, api_secret, *_token, token, *_secret, secret,
# password, passwd, credential(s). Does NOT match max_tokens or token_budget.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    [
        "embedding",
        "generation",
        "retrieval",
        "chunker",
        "fetcher",
        "sync",
        "memory",
        "provider",
        "logging",
    ]
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (pagemind.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    timeout: float = 30.0


@dataclass
class GenerationCfg:
    """LLM configuration for answers and fact extraction (pagemind.yaml: generation:)."""

    model: str = "openai/gpt-4o"
    extraction_model: str = "openai/gpt-4o-mini"


@dataclass
class RetrievalCfg:
    """Retrieval pipeline configuration (pagemind.yaml: retrieval:)."""

    mode: str = "hybrid"  # hybrid | dense | bm25
    top_k: int = 10
    rrf_k: int = 60
    min_similarity: float = 0.25
    token_budget: int = 6_000


@dataclass
class ChunkerCfg:
    """Chunk size budget (pagemind.yaml: chunker:)."""

    max_tokens: int = 400


@dataclass
class FetcherCfg:
    """Rate limiting and retry policy for the content provider (pagemind.yaml: fetcher:).

    Attributes:
        rate: Sustained requests per second (the provider's documented limit).
        burst: Token bucket capacity.
        max_concurrent: Ceiling on simultaneous in-flight requests.
        max_attempts: Attempts per call before RateLimitExceeded / give up.
        base_delay: First backoff delay in seconds (doubles per attempt).
        max_delay: Upper bound for a single backoff delay.
        timeout: Per-request socket timeout in seconds.
    """

    rate: float = 3.0
    burst: int = 3
    max_concurrent: int = 3
    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 30.0
    timeout: float = 30.0


@dataclass
class SyncCfg:
    """Background sync cadence (pagemind.yaml: sync:)."""

    interval_seconds: float = 600.0
    full_reconcile_seconds: float = 86_400.0


@dataclass
class MemoryCfg:
    """Short-term buffer and fact store settings (pagemind.yaml: memory:)."""

    short_term_turns: int = 12
    fact_top_k: int = 5
    min_fact_similarity: float = 0.3
    extraction_workers: int = 2
    extraction_queue_size: int = 32


@dataclass
class ProviderCfg:
    """Content provider endpoint (pagemind.yaml: provider:).

    The access token is read from PAGEMIND_PROVIDER_TOKEN only.
    """

    base_url: str = ""


@dataclass
class LoggingCfg:
    """Log sinks (pagemind.yaml: logging:)."""

    level: str = "INFO"
    log_to_file: bool = False
    log_dir: str = "logs"
    rotation: str = "10 MB"
    retention: str = "7 days"


@dataclass
class PagemindConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    chunker: ChunkerCfg = field(default_factory=ChunkerCfg)
    fetcher: FetcherCfg = field(default_factory=FetcherCfg)
    sync: SyncCfg = field(default_factory=SyncCfg)
    memory: MemoryCfg = field(default_factory=MemoryCfg)
    provider: ProviderCfg = field(default_factory=ProviderCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Config '{source}' contains a forbidden key '{full}'.\n"
                        f"  Secrets must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: PagemindConfig) -> None:
    if cfg.retrieval.mode not in ("hybrid", "dense", "bm25"):
        raise ConfigError(
            f"retrieval.mode must be one of hybrid, dense, bm25 — got '{cfg.retrieval.mode}'"
        )
    if cfg.fetcher.rate <= 0:
        raise ConfigError(f"fetcher.rate must be > 0, got {cfg.fetcher.rate}")
    if cfg.fetcher.max_attempts < 1:
        raise ConfigError(f"fetcher.max_attempts must be >= 1, got {cfg.fetcher.max_attempts}")
    if cfg.chunker.max_tokens < 16:
        raise ConfigError(f"chunker.max_tokens must be >= 16, got {cfg.chunker.max_tokens}")
    if cfg.provider.base_url.startswith("http://") and not _is_local_url(cfg.provider.base_url):
        warnings.warn(
            f"provider.base_url '{cfg.provider.base_url}' is not HTTPS — "
            "the provider token will be sent in clear text.",
            UserWarning,
            stacklevel=3,
        )


def _is_local_url(url: str) -> bool:
    return url.startswith(("http://localhost", "http://127.0.0.1"))


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _parse_section(cls: type, raw: dict[str, Any]) -> Any:
    """Build section dataclass *cls* from *raw*, coercing to the default's type."""
    default = cls()
    kwargs: dict[str, Any] = {}
    for f in fields(cls):
        if f.name not in raw:
            continue
        value = raw[f.name]
        current = getattr(default, f.name)
        if isinstance(current, bool):
            kwargs[f.name] = bool(value)
        elif isinstance(current, int):
            kwargs[f.name] = int(value)
        elif isinstance(current, float):
            kwargs[f.name] = float(value)
        else:
            kwargs[f.name] = str(value)
    return cls(**kwargs)


def _cfg_from_dict(data: dict[str, Any]) -> PagemindConfig:
    """Build a *PagemindConfig* from a merged raw YAML dict."""
    cfg = PagemindConfig()
    for f in fields(PagemindConfig):
        raw = data.get(f.name)
        if isinstance(raw, dict):
            section_cls = type(getattr(cfg, f.name))
            setattr(cfg, f.name, _parse_section(section_cls, raw))
    return cfg


def _apply_env_overrides(cfg: PagemindConfig) -> PagemindConfig:
    """Apply PAGEMIND_* environment variable overrides (layer 2)."""
    if model := os.environ.get("PAGEMIND_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("PAGEMIND_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if url := os.environ.get("PAGEMIND_PROVIDER_URL"):
        cfg.provider.base_url = url
    if level := os.environ.get("PAGEMIND_LOG_LEVEL"):
        cfg.logging.level = level.upper()
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> PagemindConfig:
    """Load and return a merged *PagemindConfig*.

    Applies layers in order: global → per-project → env vars.

    Args:
        project_dir: Directory to search for *pagemind.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If a config file contains secret-like keys or an invalid value.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        # Project config may not hold secrets either.
        _check_no_api_keys(raw_project, project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate(cfg)
    return cfg


def provider_token() -> str | None:
    """Return the content provider token from the environment, if set."""
    return os.environ.get("PAGEMIND_PROVIDER_TOKEN") or None
