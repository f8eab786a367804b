"""Tests for YAML config loading, env resolution and logging setup."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from link_manager.config import (
    AppConfig,
    LoggingConfig,
    ProviderConfig,
    StorageConfig,
    get_api_key,
    get_db_path,
    load_config,
    load_env_file,
)
from link_manager.logging_utils import JsonlFormatter, get_logger, log_event, setup_logging


def test_defaults_without_file():
    cfg = load_config(None)

    assert isinstance(cfg, AppConfig)
    assert cfg.provider.model == "gpt-4o-mini"
    assert cfg.extract.max_content_chars == 10000
    assert cfg.summary.max_input_chars == 8000
    assert cfg.fetch.accepted_retry_delay == 0.75
    assert (cfg.pricing.input_per_million, cfg.pricing.output_per_million) == (0.15, 0.60)


def test_yaml_overrides_merge_and_unknown_keys_are_ignored(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "provider:\n"
        "  model: local-model\n"
        "  base_url: http://localhost:8080/v1\n"
        "  bogus: 1\n"
        "extract:\n"
        "  max_content_chars: 500\n"
        "unknown_section:\n"
        "  a: b\n",
        encoding="utf-8",
    )

    cfg = load_config(str(path))

    assert cfg.provider.model == "local-model"
    assert cfg.provider.base_url == "http://localhost:8080/v1"
    assert cfg.provider.api_key_env == "OPENAI_API_KEY"
    assert cfg.extract.max_content_chars == 500
    assert "article" in cfg.extract.content_selectors
    assert not hasattr(cfg, "unknown_section")


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")

    assert load_config(str(path)) == AppConfig()


def test_api_key_prefers_inline_value(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "from-env")

    assert get_api_key(ProviderConfig(api_key="inline")) == "inline"
    assert get_api_key(ProviderConfig()) == "from-env"

    monkeypatch.setenv("OPENAI_API_KEY", "")
    assert get_api_key(ProviderConfig()) is None


def test_db_path_resolution(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("DB_PATH", raising=False)

    assert get_db_path(StorageConfig()) == tmp_path / ".config" / "lm" / "lm.db"
    assert get_db_path(StorageConfig(db_path=str(tmp_path / "x.db"))) == tmp_path / "x.db"

    monkeypatch.setenv("DB_PATH", str(tmp_path / "env.db"))
    assert get_db_path(StorageConfig(db_path=str(tmp_path / "x.db"))) == tmp_path / "env.db"


def test_env_file_is_loaded_from_config_dir(monkeypatch, tmp_path):
    monkeypatch.delenv("LM_TEST_VALUE", raising=False)
    (tmp_path / ".env").write_text("LM_TEST_VALUE=loaded\n", encoding="utf-8")

    load_env_file(Path(tmp_path))

    assert os.environ.get("LM_TEST_VALUE") == "loaded"
    monkeypatch.delenv("LM_TEST_VALUE")


def test_jsonl_file_logging_includes_event_fields(tmp_path):
    cfg = LoggingConfig(level="DEBUG", console=False, file=True, filename="lm.jsonl")
    setup_logging(cfg, tmp_path)

    log_event(get_logger("pipeline"), "Saved", event="link_saved", record_id=7, url="http://example.com")
    for handler in logging.getLogger("link_manager").handlers:
        handler.flush()

    lines = (tmp_path / "lm.jsonl").read_text(encoding="utf-8").splitlines()
    payload = json.loads(lines[-1])
    assert payload["message"] == "Saved"
    assert payload["logger"] == "link_manager.pipeline"
    assert payload["event"] == "link_saved"
    assert payload["record_id"] == 7
    assert "lineno" not in payload

    for handler in logging.getLogger("link_manager").handlers:
        handler.close()
    logging.getLogger("link_manager").handlers = []


def test_jsonl_formatter_serializes_unknown_types():
    record = logging.LogRecord("link_manager", logging.INFO, __file__, 1, "msg", None, None)
    record.path = Path("/tmp/x")

    payload = json.loads(JsonlFormatter().format(record))

    assert payload["path"] == "/tmp/x"
    assert payload["level"] == "INFO"


def test_log_event_without_logger_is_noop():
    log_event(None, "ignored", event="x")
