"""healthkb configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (HEALTHKB_DB, HEALTHKB_CHAT_MODEL, HEALTHKB_CATALOG,
     HEALTHKB_LOG_LEVEL)
  3. Per-project healthkb.yaml  (current directory)
  4. Global ~/.healthkb/config.yaml  (no API keys)
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
from typing import Any

import yaml

from healthkb.ingest.chunker import DEFAULT_CHUNK_SIZE
from healthkb.ingest.pipeline import DEFAULT_DELAY_SECONDS, DEFAULT_MAX_CONTENT_CHARS
from healthkb.ingest.web import (
    DEFAULT_MAX_BYTES,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_TIMEOUT,
    DEFAULT_USER_AGENT,
)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".healthkb"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "healthkb.yaml"

# Key names that suggest a credential; forbidden in global config.
# Does NOT match legitimate keys like max_tokens.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"  # api_key, api-key, api_secret, apikey
    r"|_token$"                  # access_token, auth_token (suffix)
    r"|^token$"                  # exactly "token"
    r"|_secret$"                 # client_secret (suffix)
    r"|^secret$"                 # exactly "secret"
    r"|passw(?:ord|d)"           # password, passwd
    r"|credential",              # credential, credentials
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["database", "ingest", "chat", "server", "logging"]
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
class DatabaseCfg:
    """Knowledge store location (healthkb.yaml: database:)."""

    path: str = "healthkb.db"


@dataclass
class IngestCfg:
    """Ingestion settings (healthkb.yaml: ingest:).

    Attributes:
        catalog: Path to a YAML URL catalog; None uses the packaged catalog.
        chunk_size: Characters per stored chunk.
        max_content_chars: Hard cap on extracted content per source.
        delay_seconds: Pause between consecutive fetches.
        timeout_seconds: Per-fetch socket timeout.
        max_bytes: Largest accepted response body.
        max_redirects: Redirects followed per fetch.
        user_agent: User-Agent header sent with every fetch.
        bootstrap_when_empty: Run one ingestion at server start if the
            store holds no sources.
    """

    catalog: str | None = None
    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_content_chars: int = DEFAULT_MAX_CONTENT_CHARS
    delay_seconds: float = DEFAULT_DELAY_SECONDS
    timeout_seconds: float = DEFAULT_TIMEOUT
    max_bytes: int = DEFAULT_MAX_BYTES
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    user_agent: str = DEFAULT_USER_AGENT
    bootstrap_when_empty: bool = False


@dataclass
class ChatCfg:
    """Responder settings (healthkb.yaml: chat:)."""

    model: str = "openai/gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 500
    top_k: int = 5
    timeout_seconds: float = 60.0


@dataclass
class ServerCfg:
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass
class LoggingCfg:
    level: str = "INFO"


@dataclass
class HealthKBConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    database: DatabaseCfg = field(default_factory=DatabaseCfg)
    ingest: IngestCfg = field(default_factory=IngestCfg)
    chat: ChatCfg = field(default_factory=ChatCfg)
    server: ServerCfg = field(default_factory=ServerCfg)
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


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in '{path}': {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file '{path}' must contain a mapping at the top level.")
    return data


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


def _cfg_from_dict(data: dict[str, Any]) -> HealthKBConfig:
    """Build a *HealthKBConfig* from a merged raw YAML dict."""
    cfg = HealthKBConfig()

    try:
        if "database" in data:
            d = data["database"]
            cfg.database = DatabaseCfg(path=str(d.get("path", cfg.database.path)))

        if "ingest" in data:
            i = data["ingest"]
            defaults = cfg.ingest
            cfg.ingest = IngestCfg(
                catalog=i.get("catalog") or defaults.catalog,
                chunk_size=int(i.get("chunk_size", defaults.chunk_size)),
                max_content_chars=int(i.get("max_content_chars", defaults.max_content_chars)),
                delay_seconds=float(i.get("delay_seconds", defaults.delay_seconds)),
                timeout_seconds=float(i.get("timeout_seconds", defaults.timeout_seconds)),
                max_bytes=int(i.get("max_bytes", defaults.max_bytes)),
                max_redirects=int(i.get("max_redirects", defaults.max_redirects)),
                user_agent=str(i.get("user_agent", defaults.user_agent)),
                bootstrap_when_empty=bool(
                    i.get("bootstrap_when_empty", defaults.bootstrap_when_empty)
                ),
            )

        if "chat" in data:
            c = data["chat"]
            cfg.chat = ChatCfg(
                model=str(c.get("model", cfg.chat.model)),
                temperature=float(c.get("temperature", cfg.chat.temperature)),
                max_tokens=int(c.get("max_tokens", cfg.chat.max_tokens)),
                top_k=int(c.get("top_k", cfg.chat.top_k)),
                timeout_seconds=float(c.get("timeout_seconds", cfg.chat.timeout_seconds)),
            )

        if "server" in data:
            s = data["server"]
            cfg.server = ServerCfg(
                host=str(s.get("host", cfg.server.host)),
                port=int(s.get("port", cfg.server.port)),
            )

        if "logging" in data:
            cfg.logging = LoggingCfg(
                level=str(data["logging"].get("level", cfg.logging.level)).upper()
            )
    except (TypeError, ValueError, AttributeError) as exc:
        raise ConfigError(f"Invalid configuration value: {exc}") from exc

    return cfg


def _validate(cfg: HealthKBConfig) -> None:
    if cfg.ingest.chunk_size < 1:
        raise ConfigError("ingest.chunk_size must be >= 1")
    if cfg.ingest.max_content_chars < 1:
        raise ConfigError("ingest.max_content_chars must be >= 1")
    if cfg.ingest.delay_seconds < 0:
        raise ConfigError("ingest.delay_seconds must be >= 0")
    if cfg.chat.top_k < 1:
        raise ConfigError("chat.top_k must be >= 1")


def _apply_env_overrides(cfg: HealthKBConfig) -> HealthKBConfig:
    """Apply HEALTHKB_* environment variable overrides."""
    if db := os.environ.get("HEALTHKB_DB"):
        cfg.database.path = db
    if model := os.environ.get("HEALTHKB_CHAT_MODEL"):
        cfg.chat.model = model
    if catalog := os.environ.get("HEALTHKB_CATALOG"):
        cfg.ingest.catalog = catalog
    if level := os.environ.get("HEALTHKB_LOG_LEVEL"):
        cfg.logging.level = level.upper()
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> HealthKBConfig:
    """Load and return a merged *HealthKBConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *healthkb.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: On unreadable YAML, invalid values, or API-key-like
            fields in the global config.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = _read_yaml(global_path)
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = _read_yaml(project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate(cfg)
    return cfg
