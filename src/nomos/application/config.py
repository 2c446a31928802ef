"""
Configuration for nomos.

Two layers:
1. AppConfig: where the collection lives, logging, server settings
   (defaults < ~/.config/nomos/config.toml < NOMOS_* env vars < CLI overrides).
2. Deck options: per-deck scheduling options from a YAML file, validated with
   pydantic and resolved once into immutable DeckConfig objects. Missing
   options inherit from the file's `default` section, then from the built-in
   defaults; nothing is defaulted later at call sites.
"""

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Literal

import yaml  # type: ignore
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from nomos.application.utils.intervals import parse_step
from nomos.domain import constants as c
from nomos.domain.errors import InvalidConfigurationError
from nomos.domain.scheduling.models import DEFAULT_DECK_CONFIG, DeckConfig

logger = logging.getLogger(__name__)


class AppConfig(BaseSettings):
    """
    Application settings.
    Supports loading from:
    1. Environment variables (NOMOS_*)
    2. Config file (~/.config/nomos/config.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="NOMOS_",
        extra="ignore",
    )

    # Paths
    data_file: Path = Field(
        default_factory=lambda: Path.home() / ".local/share/nomos/collection.json"
    )
    decks_file: Path | None = None
    log_dir: Path = Field(default_factory=lambda: Path.home() / ".config/nomos/logs")

    # Server
    host: str = "127.0.0.1"
    port: int = 8787

    verbose: int = 1

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        toml_file = Path.home() / ".config/nomos/config.toml"
        if toml_file.exists():
            # Later sources lose: init (CLI) beats env beats the file.
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (
            init_settings,
            env_settings,
        )

    @field_validator("data_file", "log_dir", mode="before")
    @classmethod
    def expand_path(cls, v: Any) -> Path:
        return Path(v).expanduser()

    @field_validator("decks_file", mode="before")
    @classmethod
    def expand_decks_file(cls, v: Any) -> Path | None:
        if not v:
            return None
        return Path(v).expanduser()


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/nomos/config.toml (if exists)
    3. Environment variables (NOMOS_*)
    4. cli_overrides (None values are ignored)
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    config = AppConfig(**overrides)

    if config.decks_file is None:
        candidate = Path.home() / ".config/nomos/decks.yaml"
        if candidate.exists():
            config.decks_file = candidate

    return config


# ---------------------------------------------------------------------------
# Deck options
# ---------------------------------------------------------------------------


class DeckOptions(BaseModel):
    """
    User-facing scheduling options for one deck (or the `default` section).

    Every field is optional: None means "inherit". Step lists accept minutes
    as numbers or strings with a unit ("30s", "10m", "2h", "1d").
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    learning_steps_minutes: tuple[float, ...] | None = Field(
        default=None,
        validation_alias=AliasChoices("learning_steps_minutes", "learning_steps", "learningSteps"),
    )
    relearning_steps_minutes: tuple[float, ...] | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "relearning_steps_minutes", "relearning_steps", "relearnSteps"
        ),
    )
    graduating_interval_days: int | None = Field(
        default=None,
        ge=1,
        validation_alias=AliasChoices("graduating_interval_days", "graduatingInterval"),
    )
    easy_interval_days: int | None = Field(
        default=None,
        ge=1,
        validation_alias=AliasChoices("easy_interval_days", "easyInterval"),
    )
    starting_ease: float | None = Field(
        default=None,
        ge=c.SM2_MIN_EASE_FACTOR,
        validation_alias=AliasChoices("starting_ease", "startingEase"),
    )
    easy_bonus: float | None = Field(
        default=None, gt=0, validation_alias=AliasChoices("easy_bonus", "easyBonus")
    )
    hard_interval_factor: float | None = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("hard_interval_factor", "hardMultiplier"),
    )
    interval_modifier: float | None = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("interval_modifier", "intervalModifier"),
    )
    lapse_new_interval_percent: float | None = Field(
        default=None,
        ge=0,
        le=1,
        validation_alias=AliasChoices("lapse_new_interval_percent", "lapseNewInterval"),
    )
    lapse_min_interval_days: int | None = Field(
        default=None,
        ge=1,
        validation_alias=AliasChoices("lapse_min_interval_days", "lapseMinInterval"),
    )
    maximum_interval_days: int | None = Field(
        default=None,
        ge=1,
        validation_alias=AliasChoices("maximum_interval_days", "maxInterval"),
    )
    new_cards_per_day: int | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("new_cards_per_day", "newCardsPerDay"),
    )
    reviews_per_day: int | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("reviews_per_day", "reviewsPerDay"),
    )
    hard_step_policy: Literal["repeat", "average"] | None = None
    fuzz: bool | None = None

    @field_validator("learning_steps_minutes", "relearning_steps_minutes", mode="before")
    @classmethod
    def parse_steps(cls, v: Any) -> tuple[float, ...] | None:
        if v is None:
            return None
        if isinstance(v, (str, int, float)):
            v = str(v).split()
        return tuple(parse_step(step) for step in v)

    def apply_to(self, base: DeckConfig) -> DeckConfig:
        """Return `base` with every option set here applied on top."""
        return replace(base, **self.model_dump(exclude_none=True))


class DeckConfigRegistry:
    """Resolved DeckConfig per deck id, with a fallback for unknown decks."""

    def __init__(
        self,
        default: DeckConfig = DEFAULT_DECK_CONFIG,
        decks: dict[str, DeckConfig] | None = None,
    ):
        self.default = default
        self._decks = dict(decks or {})

    def get(self, deck_id: str) -> DeckConfig:
        return self._decks.get(deck_id, self.default)

    def deck_ids(self) -> list[str]:
        return sorted(self._decks)


def parse_deck_configs(data: dict[str, Any] | None) -> DeckConfigRegistry:
    """
    Resolve a mapping of deck id -> options into a registry.

    The `default` key (if present) applies to every deck; other keys are deck
    ids whose options override it.

    Raises:
        InvalidConfigurationError: If any section fails validation.
    """
    if data is None:
        return DeckConfigRegistry()
    if not isinstance(data, dict):
        raise InvalidConfigurationError("Deck options must be a mapping of deck id to options")

    default = _resolve_section(
        c.DEFAULT_DECK_KEY, data.get(c.DEFAULT_DECK_KEY), DEFAULT_DECK_CONFIG
    )

    decks: dict[str, DeckConfig] = {}
    for deck_id, section in data.items():
        if deck_id == c.DEFAULT_DECK_KEY:
            continue
        decks[str(deck_id)] = _resolve_section(str(deck_id), section, default)

    return DeckConfigRegistry(default=default, decks=decks)


def load_deck_configs(path: Path | None) -> DeckConfigRegistry:
    """
    Load deck options from a YAML file.

    A missing path yields the built-in defaults for every deck.
    """
    if path is None or not path.exists():
        return DeckConfigRegistry()

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise InvalidConfigurationError(f"Could not parse {path}: {e}") from e

    registry = parse_deck_configs(data)
    logger.info(f"Loaded options for {len(registry.deck_ids())} deck(s) from {path}")
    return registry


def _resolve_section(deck_id: str, section: Any, base: DeckConfig) -> DeckConfig:
    if section is None:
        return base
    if not isinstance(section, dict):
        raise InvalidConfigurationError(f"Options for deck '{deck_id}' must be a mapping")
    try:
        options = DeckOptions.model_validate(section)
    except ValidationError as e:
        raise InvalidConfigurationError(f"Invalid options for deck '{deck_id}': {e}") from e
    try:
        return options.apply_to(base)
    except InvalidConfigurationError as e:
        raise InvalidConfigurationError(f"Invalid options for deck '{deck_id}': {e}") from e
