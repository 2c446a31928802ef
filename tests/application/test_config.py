from pathlib import Path

import pytest

from nomos.application.config import (
    DeckOptions,
    load_deck_configs,
    parse_deck_configs,
    resolve_config,
)
from nomos.domain.errors import InvalidConfigurationError
from nomos.domain.scheduling.models import DEFAULT_DECK_CONFIG, DeckConfig


def test_deck_options_apply_only_what_is_set():
    options = DeckOptions(graduating_interval_days=3, fuzz=True)
    config = options.apply_to(DEFAULT_DECK_CONFIG)
    assert config.graduating_interval_days == 3
    assert config.fuzz is True
    assert config.learning_steps_minutes == DEFAULT_DECK_CONFIG.learning_steps_minutes


def test_deck_options_accept_camel_case_and_step_units():
    options = DeckOptions.model_validate(
        {
            "learningSteps": ["30s", "10m", "1h"],
            "relearnSteps": "10 20",
            "startingEase": 2.3,
            "hardMultiplier": 1.1,
            "lapseNewInterval": 0.5,
            "maxInterval": 365,
        }
    )
    config = options.apply_to(DeckConfig())
    assert config.learning_steps_minutes == (0.5, 10.0, 60.0)
    assert config.relearning_steps_minutes == (10.0, 20.0)
    assert config.starting_ease == 2.3
    assert config.hard_interval_factor == 1.1
    assert config.lapse_new_interval_percent == 0.5
    assert config.maximum_interval_days == 365


def test_empty_step_list_is_allowed():
    options = DeckOptions.model_validate({"relearning_steps": []})
    assert options.apply_to(DeckConfig()).relearning_steps_minutes == ()


def test_parse_deck_configs_inherits_default_section():
    registry = parse_deck_configs(
        {
            "default": {"new_cards_per_day": 10, "learning_steps": [5, 30]},
            "spanish": {"new_cards_per_day": 50},
            "bio": None,
        }
    )
    assert registry.default.new_cards_per_day == 10
    assert registry.get("spanish").new_cards_per_day == 50
    assert registry.get("spanish").learning_steps_minutes == (5.0, 30.0)
    assert registry.get("bio") == registry.default
    assert registry.get("unknown") == registry.default
    assert registry.deck_ids() == ["bio", "spanish"]


@pytest.mark.parametrize(
    "data",
    [
        ["not", "a", "mapping"],
        {"bio": "fast"},
        {"bio": {"startingEase": 1.0}},
        {"bio": {"lapseNewInterval": 1.5}},
        {"bio": {"learning_steps": ["ten minutes"]}},
        {"bio": {"learning_steps": [0]}},
        {"bio": {"hard_step_policy": "skip"}},
        {"bio": {"typo_option": 1}},
        {"bio": {"learning_steps": [1, None]}},
        {"bio": {"learning_steps": [float("nan")]}},
        {"bio": {"relearning_steps": [float("inf")]}},
    ],
)
def test_parse_deck_configs_rejects_invalid(data):
    with pytest.raises(InvalidConfigurationError):
        parse_deck_configs(data)


def test_load_deck_configs_from_yaml(tmp_path):
    path = tmp_path / "decks.yaml"
    path.write_text(
        "default:\n"
        "  reviews_per_day: 100\n"
        "french:\n"
        "  learningSteps: [1m, 15m]\n"
        "  fuzz: true\n"
    )
    registry = load_deck_configs(path)
    assert registry.default.reviews_per_day == 100
    french = registry.get("french")
    assert french.learning_steps_minutes == (1.0, 15.0)
    assert french.fuzz is True
    assert french.reviews_per_day == 100


def test_load_deck_configs_missing_file(tmp_path):
    registry = load_deck_configs(tmp_path / "missing.yaml")
    assert registry.default == DEFAULT_DECK_CONFIG
    assert load_deck_configs(None).deck_ids() == []


def test_load_deck_configs_bad_yaml(tmp_path):
    path = tmp_path / "decks.yaml"
    path.write_text("bio: [unclosed\n")
    with pytest.raises(InvalidConfigurationError):
        load_deck_configs(path)


@pytest.mark.parametrize("steps", ["[1, null]", "[.nan]", "[10, .inf]"])
def test_load_deck_configs_rejects_bad_yaml_steps(tmp_path, steps):
    path = tmp_path / "decks.yaml"
    path.write_text(f"bio:\n  learning_steps: {steps}\n")
    with pytest.raises(InvalidConfigurationError):
        load_deck_configs(path)


def test_resolve_config_defaults(mock_home, monkeypatch):
    monkeypatch.delenv("NOMOS_DATA_FILE", raising=False)
    monkeypatch.delenv("NOMOS_PORT", raising=False)
    config = resolve_config()
    assert config.data_file == mock_home / ".local/share/nomos/collection.json"
    assert config.decks_file is None
    assert config.port == 8787


def test_resolve_config_layers(mock_home, monkeypatch):
    config_dir = mock_home / ".config/nomos"
    config_dir.mkdir(parents=True)
    (config_dir / "config.toml").write_text('port = 9000\nhost = "0.0.0.0"\n')
    (config_dir / "decks.yaml").write_text("default: {}\n")

    monkeypatch.setenv("NOMOS_PORT", "9100")

    config = resolve_config({"host": None, "data_file": "~/cards.json"})
    assert config.host == "0.0.0.0"
    assert config.port == 9100
    assert config.data_file == mock_home / "cards.json"
    assert config.decks_file == config_dir / "decks.yaml"

    assert resolve_config({"port": 7000}).port == 7000


def test_resolve_config_expands_decks_file(mock_home):
    config = resolve_config({"decks_file": Path("~/my-decks.yaml")})
    assert config.decks_file == mock_home / "my-decks.yaml"
