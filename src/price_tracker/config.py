"""Configuration management for the price tracker."""

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_UNIT_SYNONYMS: dict[str, list[str]] = {
    "case": ["case", "cs", "cases"],
    "pound": ["lb", "lbs", "pound", "pounds"],
    "ounce": ["oz", "ounce", "ounces"],
    "kilogram": ["kg", "kilogram", "kilograms"],
    "each": ["each", "ea", "piece", "pieces", "pcs"],
}

DEFAULT_CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "Vegetables": ["tomato", "onion", "pepper", "lettuce", "carrot", "potato"],
    "Proteins": ["chicken", "beef", "pork", "turkey", "meat"],
    "Seafood": ["salmon", "fish", "shrimp", "seafood", "tuna"],
    "Dairy": ["cheese", "milk", "cream", "butter", "dairy"],
    "Grains": ["flour", "bread", "rice", "grain", "pasta"],
    "Condiments": ["oil", "vinegar", "sauce", "spice", "salt"],
}


@dataclass
class DataConfig:
    """Data storage configuration."""

    storage_dir: Path
    db_name: str = "prices.db"
    busy_timeout_seconds: float = 30.0

    @property
    def db_path(self) -> Path:
        """Full path of the SQLite database file."""
        return self.storage_dir / self.db_name


@dataclass
class MatchingConfig:
    """Item matcher tuning and lookup tables.

    ``unit_synonyms`` maps a canonical unit to the spellings that collapse
    into it. ``category_keywords`` is checked in insertion order, so the
    first category with a matching keyword wins.
    """

    match_threshold: float = 0.80
    name_weight: float = 0.7
    unit_weight: float = 0.2
    category_weight: float = 0.1
    default_unit: str = "each"
    default_category: str = "Other"
    unit_synonyms: dict[str, list[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_UNIT_SYNONYMS.items()}
    )
    category_keywords: dict[str, list[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_CATEGORY_KEYWORDS.items()}
    )

    def unit_lookup(self) -> dict[str, str]:
        """Flatten synonyms into a spelling -> canonical unit table."""
        lookup: dict[str, str] = {}
        for canonical, spellings in self.unit_synonyms.items():
            lookup[canonical.lower()] = canonical.lower()
            for spelling in spellings:
                lookup[spelling.lower()] = canonical.lower()
        return lookup


@dataclass
class AlertsConfig:
    """Price alert thresholds, in percent."""

    threshold_pct: float = 10.0
    high_severity_pct: float = 20.0


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "WARNING"


@dataclass
class Config:
    """Complete application configuration."""

    data: DataConfig
    matching: MatchingConfig
    alerts: AlertsConfig
    logging: LoggingConfig


class ConfigManager:
    """Manages application configuration from TOML files."""

    def __init__(self, config_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            config_path: Optional explicit path to config file.
                        If not provided, searches standard locations.
        """
        self.config_path = config_path or self._find_config()
        self._config = self._load_config()

    @property
    def data(self) -> DataConfig:
        """Get data configuration."""
        return self._config.data

    @property
    def matching(self) -> MatchingConfig:
        """Get matching configuration."""
        return self._config.matching

    @property
    def alerts(self) -> AlertsConfig:
        """Get alerts configuration."""
        return self._config.alerts

    @property
    def logging(self) -> LoggingConfig:
        """Get logging configuration."""
        return self._config.logging

    def _find_config(self) -> Path:
        """Find config file in standard locations."""
        locations = [
            Path.cwd() / "config.toml",
            Path.home() / ".config" / "price-tracker" / "config.toml",
            Path.home() / ".price-tracker" / "config.toml",
        ]

        for loc in locations:
            if loc.exists():
                return loc

        # Return default location if none found
        return Path.home() / ".config" / "price-tracker" / "config.toml"

    def _load_config(self) -> Config:
        """Load configuration from TOML file."""
        if not self.config_path.exists():
            return self._default_config()

        with open(self.config_path, "rb") as f:
            data = tomllib.load(f)

        data_section = data.get("data", {})
        matching_section = data.get("matching", {})
        alerts_section = data.get("alerts", {})
        defaults = MatchingConfig()

        return Config(
            data=DataConfig(
                storage_dir=Path(
                    data_section.get("storage_dir", "~/price-tracker/data")
                ).expanduser(),
                db_name=data_section.get("db_name", "prices.db"),
                busy_timeout_seconds=float(data_section.get("busy_timeout_seconds", 30.0)),
            ),
            matching=MatchingConfig(
                match_threshold=float(matching_section.get("match_threshold", 0.80)),
                name_weight=float(matching_section.get("name_weight", 0.7)),
                unit_weight=float(matching_section.get("unit_weight", 0.2)),
                category_weight=float(matching_section.get("category_weight", 0.1)),
                default_unit=matching_section.get("default_unit", "each"),
                default_category=matching_section.get("default_category", "Other"),
                unit_synonyms=matching_section.get("units", defaults.unit_synonyms),
                category_keywords=matching_section.get(
                    "categories", defaults.category_keywords
                ),
            ),
            alerts=AlertsConfig(
                threshold_pct=float(alerts_section.get("threshold_pct", 10.0)),
                high_severity_pct=float(alerts_section.get("high_severity_pct", 20.0)),
            ),
            logging=LoggingConfig(
                level=str(data.get("logging", {}).get("level", "WARNING")).upper(),
            ),
        )

    def _default_config(self) -> Config:
        """Return default configuration."""
        return Config(
            data=DataConfig(storage_dir=Path.home() / "price-tracker" / "data"),
            matching=MatchingConfig(),
            alerts=AlertsConfig(),
            logging=LoggingConfig(),
        )

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get config value by dot-notation path.

        Args:
            key_path: Dot-separated path like 'matching.match_threshold'
            default: Default value if path not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split(".")
        value: Any = self._config

        for key in keys:
            if hasattr(value, key):
                value = getattr(value, key)
            elif isinstance(value, dict):
                value = value.get(key)
                if value is None:
                    return default
            else:
                return default

        return value if value is not None else default
