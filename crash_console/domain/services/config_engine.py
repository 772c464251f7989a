"""
CONFIG ENGINE
Load, validate, and expose market crash configuration

RESPONSIBILITIES:
- Load YAML configuration files
- Validate configuration integrity
- Expose read-only typed objects

RULES:
- No defaults if config missing
- Fail fast on invalid config
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, FrozenSet, List, Tuple

import yaml


@dataclass(frozen=True)
class CrashOption:
    value: int
    label: str


@dataclass(frozen=True)
class CrashOptions:
    """Allowed intensity / duration choices offered to the operator"""
    intensities: Tuple[CrashOption, ...]
    durations: Tuple[CrashOption, ...]
    default_intensity: int
    default_duration: int

    @property
    def allowed_intensities(self) -> FrozenSet[int]:
        return frozenset(option.value for option in self.intensities)

    @property
    def allowed_durations(self) -> FrozenSet[int]:
        return frozenset(option.value for option in self.durations)

    def is_valid_intensity(self, value: object) -> bool:
        return _is_plain_int(value) and value in self.allowed_intensities

    def is_valid_duration(self, value: object) -> bool:
        return _is_plain_int(value) and value in self.allowed_durations

    def duration_label(self, minutes: int) -> str:
        for option in self.durations:
            if option.value == minutes:
                return option.label
        return f"{minutes} minutes"


def _is_plain_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class ConfigEngine:
    """
    Configuration Engine
    Single source of truth for market crash configuration
    """

    CRASH_FILE = "market_crash.yml"

    def __init__(self, config_dir: Path):
        self.config_dir = Path(config_dir)
        self._crash_options: CrashOptions = None

    def load_all(self) -> None:
        """Load all configuration files"""
        self._load_crash_options()

    def _load_crash_options(self) -> None:
        crash_file = self.config_dir / self.CRASH_FILE
        if not crash_file.exists():
            raise FileNotFoundError(f"Market crash config not found: {crash_file}")

        with open(crash_file, "r") as f:
            data = yaml.safe_load(f) or {}

        intensities = self._parse_options(data.get("intensities", []), "percent", "intensities")
        durations = self._parse_options(data.get("durations", []), "minutes", "durations")

        defaults: Dict = data.get("defaults") or {}
        if "intensity_percent" not in defaults or "duration_minutes" not in defaults:
            raise ValueError("Market crash config must define defaults.intensity_percent and defaults.duration_minutes")

        options = CrashOptions(
            intensities=intensities,
            durations=durations,
            default_intensity=int(defaults["intensity_percent"]),
            default_duration=int(defaults["duration_minutes"]),
        )

        if options.default_intensity not in options.allowed_intensities:
            raise ValueError(f"Default intensity {options.default_intensity}% is not an allowed intensity")
        if options.default_duration not in options.allowed_durations:
            raise ValueError(f"Default duration {options.default_duration} min is not an allowed duration")

        self._crash_options = options

    @staticmethod
    def _parse_options(entries: List[Dict], key: str, section: str) -> Tuple[CrashOption, ...]:
        if not entries:
            raise ValueError(f"Market crash config section '{section}' is empty")

        options = []
        for entry in entries:
            value = int(entry[key])
            if value <= 0:
                raise ValueError(f"{section}: values must be positive, got {value}")
            options.append(CrashOption(value=value, label=str(entry.get("label") or value)))

        values = [option.value for option in options]
        if len(values) != len(set(values)):
            raise ValueError(f"Duplicate values found in '{section}'")

        return tuple(options)

    @property
    def crash_options(self) -> CrashOptions:
        if self._crash_options is None:
            raise RuntimeError("Configuration not loaded; call load_all() first")
        return self._crash_options
