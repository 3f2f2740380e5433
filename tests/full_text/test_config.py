from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from PapersKit.FullText.config import (
    DEFAULT_PDF_DOMAINS,
    PapersSettings,
    PollingConfig,
    load_config,
)


def test_defaults() -> None:
    settings = load_config()

    assert settings.cache_root is None
    assert not settings.zotero.configured
    assert settings.polling.retries == 55
    assert settings.polling.total == 56
    assert settings.polling.initial_delay_s == 5.0
    assert settings.polling.interval_s == 2.0
    assert settings.acquisition.pdf_domains == DEFAULT_PDF_DOMAINS
    assert settings.datalab.base_url == "https://www.datalab.to"


def test_yaml_file_is_loaded(tmp_path: Path) -> None:
    path = tmp_path / "paperskit.yaml"
    path.write_text("polling:\n  retries: 10\nacquisition:\n  pdf_domains: [Example.ORG]\n")

    settings = load_config(path)

    assert settings.polling.retries == 10
    assert settings.acquisition.pdf_domains == ["example.org"]


def test_json_file_is_loaded(tmp_path: Path) -> None:
    path = tmp_path / "paperskit.json"
    path.write_text(json.dumps({"http": {"max_attempts": 2}}))

    assert load_config(str(path)).http.max_attempts == 2


def test_conventional_credentials_are_read(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("ZOTERO_USER_ID", "123456")
    monkeypatch.setenv("ZOTERO_API_KEY", "zkey")
    monkeypatch.setenv("DATALAB_API_KEY", "dkey")
    monkeypatch.setenv("PAPERS_EXTRACT_CACHE_DIR", str(tmp_path))

    settings = load_config()

    assert settings.zotero.configured
    assert settings.zotero.user_id == "123456"
    assert settings.datalab.api_key == "dkey"
    assert settings.cache_root == tmp_path


def test_precedence_file_env_cli(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    path = tmp_path / "paperskit.yaml"
    path.write_text("polling:\n  retries: 10\n  interval_s: 9\n  initial_delay_s: 1\n")
    monkeypatch.setenv("PAPERSKIT_POLLING__RETRIES", "20")
    monkeypatch.setenv("PAPERSKIT_POLLING__INTERVAL_S", "3")

    settings = load_config(path, cli_overrides={"polling": {"retries": 30}})

    assert settings.polling.retries == 30
    assert settings.polling.interval_s == 3
    assert settings.polling.initial_delay_s == 1


def test_prefixed_env_beats_conventional(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ZOTERO_API_KEY", "conventional")
    monkeypatch.setenv("PAPERSKIT_ZOTERO__API_KEY", "prefixed")

    assert load_config().zotero.api_key == "prefixed"


def test_config_path_from_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    path = tmp_path / "from-env.yaml"
    path.write_text("polling:\n  retries: 7\n")
    monkeypatch.setenv("PAPERSKIT_CONFIG", str(path))

    assert load_config().polling.retries == 7


def test_unknown_keys_are_rejected(tmp_path: Path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("polling:\n  retriez: 3\n")

    with pytest.raises(ValidationError):
        load_config(path)


@pytest.mark.parametrize(
    "name, body",
    [("missing.yaml", None), ("list.yaml", "- a\n- b\n"), ("settings.toml", "a = 1\n")],
)
def test_bad_files_raise_value_error(tmp_path: Path, name: str, body) -> None:
    path = tmp_path / name
    if body is not None:
        path.write_text(body)

    with pytest.raises(ValueError):
        load_config(path)


def test_polling_validation() -> None:
    with pytest.raises(ValidationError):
        PollingConfig(retries=0)
    with pytest.raises(ValidationError):
        PollingConfig(interval_s=-1)


def test_config_hash_ignores_secrets() -> None:
    plain = PapersSettings()
    keyed = PapersSettings.model_validate({"zotero": {"api_key": "secret"}})
    tuned = PapersSettings.model_validate({"polling": {"retries": 3}})

    assert plain.config_hash() == keyed.config_hash()
    assert plain.config_hash() != tuned.config_hash()
