from __future__ import annotations

import json
from pathlib import Path

import pytest

from quant_prep.question_generator import GenerationConfig, Operator
from quant_prep.settings import (
    HISTORY_DB_PATH_ENV,
    SETTINGS_PATH_ENV,
    SettingsStore,
    UserSettings,
    default_history_db_path,
)


def test_missing_file_gives_defaults(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "settings.json")

    assert store.username == ""
    assert store.generation == GenerationConfig()


def test_username_and_generation_persist(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    store = SettingsStore(path)
    cfg = GenerationConfig(addition_max_digits=5, enabled_operators=frozenset({Operator.DIV}))

    store.set_username("  ada ")
    store.set_generation(cfg)

    reloaded = SettingsStore(path)
    assert reloaded.username == "ada"
    assert reloaded.generation == cfg
    assert json.loads(path.read_text(encoding="utf-8"))["version"] == 1


def test_clear_username_keeps_generation(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    store = SettingsStore(path)
    store.set_generation(GenerationConfig(subtraction_max_decimals=0))
    store.set_username("ada")

    store.clear_username()

    reloaded = SettingsStore(path)
    assert reloaded.username == ""
    assert reloaded.generation.subtraction_max_decimals == 0


def test_corrupt_file_falls_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")

    assert SettingsStore(path).settings == UserSettings()


def test_out_of_range_values_are_not_clamped(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    payload = {"version": 1, "settings": {"username": "ada", "generation": {"addition_max_digits": 9}}}
    path.write_text(json.dumps(payload), encoding="utf-8")

    assert SettingsStore(path).generation.addition_max_digits == 9


def test_paths_honour_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv(SETTINGS_PATH_ENV, str(tmp_path / "s.json"))
    monkeypatch.setenv(HISTORY_DB_PATH_ENV, str(tmp_path / "h.sqlite3"))

    assert SettingsStore.default_path() == tmp_path / "s.json"
    assert default_history_db_path() == tmp_path / "h.sqlite3"


def test_default_paths_live_in_home(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(SETTINGS_PATH_ENV, raising=False)
    monkeypatch.delenv(HISTORY_DB_PATH_ENV, raising=False)

    assert SettingsStore.default_path() == Path.home() / ".quant_prep_settings.json"
    assert default_history_db_path() == Path.home() / ".quant_prep_history.sqlite3"
