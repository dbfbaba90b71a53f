"""Tests for the healthkb config loader."""

from __future__ import annotations

import warnings
from pathlib import Path

import pytest
import yaml

from healthkb.config import ConfigError, HealthKBConfig, load_config


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_yaml(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.dump(data), encoding="utf-8")


def _load(tmp_path: Path, global_path: Path | None = None) -> HealthKBConfig:
    return load_config(
        project_dir=tmp_path,
        global_config_path=global_path or tmp_path / "nonexistent" / "config.yaml",
    )


# ---------------------------------------------------------------------------
# Defaults — no config files present
# ---------------------------------------------------------------------------


def test_load_config_defaults_no_files(tmp_path: Path) -> None:
    cfg = _load(tmp_path)

    assert cfg.database.path == "healthkb.db"
    assert cfg.ingest.catalog is None
    assert cfg.ingest.chunk_size == 1000
    assert cfg.ingest.max_content_chars == 50_000
    assert cfg.ingest.delay_seconds == 0.5
    assert cfg.ingest.bootstrap_when_empty is False
    assert cfg.chat.model == "openai/gpt-4o-mini"
    assert cfg.chat.temperature == 0.7
    assert cfg.chat.max_tokens == 500
    assert cfg.chat.top_k == 5
    assert cfg.server.port == 8000
    assert cfg.logging.level == "INFO"


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def test_global_config_applied(tmp_path: Path) -> None:
    global_path = tmp_path / "global" / "config.yaml"
    _write_yaml(global_path, {"chat": {"model": "anthropic/claude-3-5-haiku"}})
    cfg = _load(tmp_path, global_path)
    assert cfg.chat.model == "anthropic/claude-3-5-haiku"
    assert cfg.chat.top_k == 5


def test_project_overrides_global(tmp_path: Path) -> None:
    global_path = tmp_path / "global" / "config.yaml"
    _write_yaml(global_path, {"chat": {"model": "anthropic/claude-3-5-haiku", "top_k": 3}})
    _write_yaml(tmp_path / "healthkb.yaml", {"chat": {"model": "openai/gpt-4o"}})
    cfg = _load(tmp_path, global_path)
    assert cfg.chat.model == "openai/gpt-4o"
    assert cfg.chat.top_k == 3


def test_env_overrides_files(tmp_path: Path, monkeypatch) -> None:
    _write_yaml(tmp_path / "healthkb.yaml", {"database": {"path": "file.db"}})
    monkeypatch.setenv("HEALTHKB_DB", "env.db")
    monkeypatch.setenv("HEALTHKB_CHAT_MODEL", "groq/llama3-8b")
    monkeypatch.setenv("HEALTHKB_CATALOG", "custom.yaml")
    monkeypatch.setenv("HEALTHKB_LOG_LEVEL", "debug")
    cfg = _load(tmp_path)
    assert cfg.database.path == "env.db"
    assert cfg.chat.model == "groq/llama3-8b"
    assert cfg.ingest.catalog == "custom.yaml"
    assert cfg.logging.level == "DEBUG"


def test_ingest_section_parsed(tmp_path: Path) -> None:
    _write_yaml(
        tmp_path / "healthkb.yaml",
        {"ingest": {"chunk_size": 500, "delay_seconds": 1, "bootstrap_when_empty": True}},
    )
    cfg = _load(tmp_path)
    assert cfg.ingest.chunk_size == 500
    assert cfg.ingest.delay_seconds == 1.0
    assert cfg.ingest.bootstrap_when_empty is True
    assert cfg.ingest.max_content_chars == 50_000


# ---------------------------------------------------------------------------
# Errors and warnings
# ---------------------------------------------------------------------------


def test_api_key_in_global_config_rejected(tmp_path: Path) -> None:
    global_path = tmp_path / "global" / "config.yaml"
    _write_yaml(global_path, {"chat": {"api_key": "sk-secret"}})
    with pytest.raises(ConfigError, match="forbidden key 'chat.api_key'"):
        _load(tmp_path, global_path)


def test_max_tokens_not_mistaken_for_secret(tmp_path: Path) -> None:
    global_path = tmp_path / "global" / "config.yaml"
    _write_yaml(global_path, {"chat": {"max_tokens": 300}})
    assert _load(tmp_path, global_path).chat.max_tokens == 300


def test_invalid_yaml_raises(tmp_path: Path) -> None:
    (tmp_path / "healthkb.yaml").write_text("chat: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="Invalid YAML"):
        _load(tmp_path)


def test_non_mapping_raises(tmp_path: Path) -> None:
    (tmp_path / "healthkb.yaml").write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        _load(tmp_path)


def test_bad_value_type_raises(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "healthkb.yaml", {"chat": {"top_k": "many"}})
    with pytest.raises(ConfigError, match="Invalid configuration value"):
        _load(tmp_path)


def test_section_not_mapping_raises(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "healthkb.yaml", {"chat": "gpt"})
    with pytest.raises(ConfigError):
        _load(tmp_path)


@pytest.mark.parametrize(
    "data, match",
    [
        ({"ingest": {"chunk_size": 0}}, "chunk_size"),
        ({"ingest": {"max_content_chars": 0}}, "max_content_chars"),
        ({"ingest": {"delay_seconds": -1}}, "delay_seconds"),
        ({"chat": {"top_k": 0}}, "top_k"),
    ],
)
def test_out_of_range_values_rejected(tmp_path: Path, data, match) -> None:
    _write_yaml(tmp_path / "healthkb.yaml", data)
    with pytest.raises(ConfigError, match=match):
        _load(tmp_path)


def test_unknown_section_warns(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "healthkb.yaml", {"embeddings": {"model": "x"}})
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        _load(tmp_path)
    assert any("Unknown config key 'embeddings'" in str(w.message) for w in caught)
