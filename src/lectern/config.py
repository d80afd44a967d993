"""Lectern configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (LECTERN_GENERATION_MODEL, LECTERN_EMBEDDING_MODEL, LECTERN_DB)
  3. Per-project lectern.yaml  (current working directory)
  4. Global ~/.lectern/config.yaml  (model defaults only — no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".lectern"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "lectern.yaml"

# Matches: api_key, apikey, api-key, api_secret, _token (suffix), standalone token,
# standalone secret, _secret (suffix), password, passwd, credential(s).
# Does NOT match legitimate config keys like max_tokens or rrf_k.
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
    ["embedding", "generation", "limits", "retrieval", "storage", "pricing"]
)

# USD per 1,000 tokens.
_DEFAULT_PRICES: dict[str, dict[str, float]] = {
    "openai/text-embedding-3-small": {"input": 0.00002, "output": 0.0},
    "openai/text-embedding-3-large": {"input": 0.00013, "output": 0.0},
    "openai/text-embedding-ada-002": {"input": 0.0001, "output": 0.0},
    "openai/gpt-4o-mini": {"input": 0.00015, "output": 0.0006},
    "openai/gpt-4o": {"input": 0.0025, "output": 0.01},
}


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
    """Embedding model configuration (lectern.yaml: embedding:).

    ``dimensions`` must match the vector column width of the store exactly.
    """

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536


@dataclass
class GenerationCfg:
    """LLM generation configuration (lectern.yaml: generation:)."""

    model: str = "openai/gpt-4o-mini"
    temperature: float = 0.2
    max_tokens: int | None = None


@dataclass
class LimitsCfg:
    """Character budgets for normalized content (lectern.yaml: limits:).

    Attributes:
        storage_limit: Hard ceiling on persisted content length.
        embed_limit: Ceiling on the text sent to the embedding model.
            Always <= storage_limit.
    """

    storage_limit: int = 25_000
    embed_limit: int = 15_000


@dataclass
class RetrievalCfg:
    """Retrieval configuration (lectern.yaml: retrieval:)."""

    candidate_limit: int = 50
    rrf_k: int = 60
    search_limit: int = 10
    notebook_top_k: int = 5


@dataclass
class StorageCfg:
    """Database and upload locations (lectern.yaml: storage:)."""

    db_path: str = ".lectern.db"
    uploads_dir: str = "uploads"


@dataclass(frozen=True)
class ModelPrice:
    """Price of one model in USD per 1,000 tokens."""

    input: float = 0.0
    output: float = 0.0


@dataclass(frozen=True)
class PriceTable:
    """Immutable per-model price table injected into the usage meter."""

    prices: Mapping[str, ModelPrice] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @classmethod
    def from_dict(cls, raw: Mapping[str, Mapping[str, Any]]) -> PriceTable:
        prices: dict[str, ModelPrice] = {}
        for model, rates in raw.items():
            if not isinstance(rates, Mapping):
                raise ConfigError(
                    f"pricing.{model} must be a mapping with 'input'/'output' rates."
                )
            prices[str(model)] = ModelPrice(
                input=float(rates.get("input", 0.0)),
                output=float(rates.get("output", 0.0)),
            )
        return cls(prices=MappingProxyType(prices))

    def get(self, model: str) -> ModelPrice | None:
        """Look up *model*, falling back to the name without its provider prefix."""
        price = self.prices.get(model)
        if price is None and "/" in model:
            price = self.prices.get(model.split("/", 1)[1])
        return price

    def __contains__(self, model: object) -> bool:
        return isinstance(model, str) and self.get(model) is not None


def default_price_table() -> PriceTable:
    return PriceTable.from_dict(_DEFAULT_PRICES)


@dataclass
class LecternConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    limits: LimitsCfg = field(default_factory=LimitsCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    storage: StorageCfg = field(default_factory=StorageCfg)
    pricing: PriceTable = field(default_factory=default_price_table)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                # Model names under pricing are never credentials.
                if path != "pricing" and _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
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


def _validate(cfg: LecternConfig) -> None:
    if cfg.embedding.dimensions < 1:
        raise ConfigError(
            f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}"
        )
    if cfg.limits.embed_limit < 1 or cfg.limits.storage_limit < 1:
        raise ConfigError("limits.storage_limit and limits.embed_limit must be >= 1")
    if cfg.limits.embed_limit > cfg.limits.storage_limit:
        raise ConfigError(
            f"limits.embed_limit ({cfg.limits.embed_limit}) must not exceed "
            f"limits.storage_limit ({cfg.limits.storage_limit})."
        )
    if cfg.retrieval.rrf_k < 1:
        raise ConfigError(f"retrieval.rrf_k must be >= 1, got {cfg.retrieval.rrf_k}")
    for model in (cfg.embedding.model, cfg.generation.model):
        if model not in cfg.pricing:
            warnings.warn(
                f"Model '{model}' has no entry in the pricing table — "
                "its usage will be recorded at zero cost.",
                UserWarning,
                stacklevel=3,
            )


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


def _cfg_from_dict(data: dict[str, Any]) -> LecternConfig:
    """Build a *LecternConfig* from a merged raw YAML dict."""
    cfg = LecternConfig()

    if "embedding" in data:
        e = data["embedding"]
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
        )

    if "generation" in data:
        g = data["generation"]
        max_tokens = g.get("max_tokens", cfg.generation.max_tokens)
        cfg.generation = GenerationCfg(
            model=str(g.get("model", cfg.generation.model)),
            temperature=float(g.get("temperature", cfg.generation.temperature)),
            max_tokens=int(max_tokens) if max_tokens is not None else None,
        )

    if "limits" in data:
        lim = data["limits"]
        cfg.limits = LimitsCfg(
            storage_limit=int(lim.get("storage_limit", cfg.limits.storage_limit)),
            embed_limit=int(lim.get("embed_limit", cfg.limits.embed_limit)),
        )

    if "retrieval" in data:
        r = data["retrieval"]
        cfg.retrieval = RetrievalCfg(
            candidate_limit=int(r.get("candidate_limit", cfg.retrieval.candidate_limit)),
            rrf_k=int(r.get("rrf_k", cfg.retrieval.rrf_k)),
            search_limit=int(r.get("search_limit", cfg.retrieval.search_limit)),
            notebook_top_k=int(r.get("notebook_top_k", cfg.retrieval.notebook_top_k)),
        )

    if "storage" in data:
        s = data["storage"]
        cfg.storage = StorageCfg(
            db_path=str(s.get("db_path", cfg.storage.db_path)),
            uploads_dir=str(s.get("uploads_dir", cfg.storage.uploads_dir)),
        )

    if "pricing" in data:
        # Per-model entries extend (and override) the built-in table.
        cfg.pricing = PriceTable.from_dict(
            _deep_merge(_DEFAULT_PRICES, data["pricing"] or {})
        )

    return cfg


def _apply_env_overrides(cfg: LecternConfig) -> LecternConfig:
    """Apply LECTERN_* environment variable overrides."""
    if model := os.environ.get("LECTERN_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("LECTERN_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if db_path := os.environ.get("LECTERN_DB"):
        cfg.storage.db_path = db_path
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> LecternConfig:
    """Load and return a merged *LecternConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *lectern.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *LecternConfig* with env var overrides applied.

    Raises:
        ConfigError: If global config contains API-key-like fields, or if a
            value is out of range (e.g. embed_limit > storage_limit).
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
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)
    cfg = _apply_env_overrides(cfg)
    _validate(cfg)
    return cfg
