"""
Configuration for Smart Search and Smart Import.

Holds the header synonym dictionary, per-field import defaults, the
indexable fields of each collection and the search settings.
Config is declarative JSON - edit the file, not the code.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .models import PRODUCT_FIELDS
from .normalize import normalize_header

DEFAULT_CONFIG_PATH = Path(__file__).parent / "smart_search_config.json"

DEFAULT_FIELD_DEFAULTS: dict[str, Any] = {
    "name": "Unknown Item",
    "batch": "N/A",
    "hsn": "3004",
    "manufacturer": "",
    "gstRate": 5,
    "expiry": "2025-12-31",
}

DEFAULT_INDEX_FIELDS: dict[str, list[str]] = {
    "products": ["name", "batch", "hsn", "manufacturer"],
    "parties": ["name", "gstin", "phone", "email", "address"],
}


@dataclass
class CollectionConfig:
    """Search configuration for one record collection."""
    name: str
    index_fields: list[str]


@dataclass
class SearchSettings:
    """Settings for the search controller."""
    result_limit: int = 100          # Cap for blank and accurate queries
    index_limit: int = 100           # Distinct ids requested from the index
    rebuild_delay_seconds: float = 0.1


@dataclass
class Config:
    """Full configuration for smart search and import."""
    header_synonyms: dict[str, list[str]] = field(default_factory=dict)
    field_defaults: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_FIELD_DEFAULTS))
    collections: dict[str, CollectionConfig] = field(default_factory=dict)
    settings: SearchSettings = field(default_factory=SearchSettings)

    # Canonical field -> normalized aliases in priority order (built on load)
    _alias_lookup: dict[str, list[str]] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        for name, index_fields in DEFAULT_INDEX_FIELDS.items():
            self.collections.setdefault(name, CollectionConfig(name, list(index_fields)))
        self._build_alias_lookup()

    def _build_alias_lookup(self):
        """Normalize every alias once; a field without configured aliases matches its own name."""
        self._alias_lookup = {}
        for canonical in PRODUCT_FIELDS:
            self.header_synonyms.setdefault(canonical, [canonical])

        for canonical, aliases in self.header_synonyms.items():
            if not aliases:
                raise ValueError(f"Synonym list for '{canonical}' is empty")
            normalized = []
            for alias in aliases:
                key = normalize_header(alias)
                if key and key not in normalized:
                    normalized.append(key)
            if not normalized:
                raise ValueError(f"Synonym list for '{canonical}' has no usable alias")
            self._alias_lookup[canonical] = normalized

    def aliases_for(self, canonical: str) -> list[str]:
        """Normalized aliases for a canonical field, highest priority first."""
        return self._alias_lookup.get(canonical, [])

    def default_for(self, canonical: str) -> Any:
        """Import default for a field; numeric fields without one default to 0."""
        return self.field_defaults.get(canonical, DEFAULT_FIELD_DEFAULTS.get(canonical, 0))

    def collection(self, name: str) -> CollectionConfig:
        """
        Look up a collection's search config.

        Raises:
            KeyError if the collection is not configured
        """
        try:
            return self.collections[name]
        except KeyError:
            raise KeyError(f"Unknown collection: {name}") from None


def load_config(config_path: str | Path) -> Config:
    """
    Load configuration from a JSON file.

    Args:
        config_path: Path to smart_search_config.json

    Returns:
        Config with synonyms, defaults, collections and settings
    """
    path = Path(config_path)
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    collections = {}
    for name, coll_data in data.get("collections", {}).items():
        collections[name] = CollectionConfig(
            name=name,
            index_fields=list(coll_data.get("index_fields", DEFAULT_INDEX_FIELDS.get(name, ["name"]))),
        )

    settings_data = data.get("settings", {})
    settings = SearchSettings(
        result_limit=int(settings_data.get("result_limit", 100)),
        index_limit=int(settings_data.get("index_limit", 100)),
        rebuild_delay_seconds=float(settings_data.get("rebuild_delay_seconds", 0.1)),
    )

    field_defaults = dict(DEFAULT_FIELD_DEFAULTS)
    field_defaults.update(data.get("field_defaults", {}))

    return Config(
        header_synonyms={k: list(v) for k, v in data.get("header_synonyms", {}).items()},
        field_defaults=field_defaults,
        collections=collections,
        settings=settings,
    )


def default_config() -> Config:
    """Load the configuration shipped with the package."""
    return load_config(DEFAULT_CONFIG_PATH)
