"""Load insight policy definitions from TOML files."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from domain.config_base import (
    BaseSystemConfig,
    load_system_configs,
    parse_system_section,
    read_toml,
)
from domain.insights.parameters import InsightsParameters


@dataclass(frozen=True)
class InsightsConfig(BaseSystemConfig):
    """One named set of insight thresholds."""

    parameters: InsightsParameters

    def as_config_json(self) -> dict[str, Any]:
        return {
            "lookback_days": self.lookback_days,
            "min_core_matches": self.parameters.min_core_matches,
            "core_sizes": list(self.parameters.core_sizes),
            "max_core_roster": self.parameters.max_core_roster,
            "max_cores_per_size": self.parameters.max_cores_per_size,
            "guest_limit": self.parameters.guest_limit,
            "min_lineup_matches": self.parameters.min_lineup_matches,
            "min_configuration_matches": self.parameters.min_configuration_matches,
            "confidence_medium_min": self.parameters.confidence_medium_min,
            "confidence_high_min": self.parameters.confidence_high_min,
            "role_combo_min_matches": self.parameters.role_combo_min_matches,
            "presence_min_player_matches": self.parameters.presence_min_player_matches,
            "recent_form_length": self.parameters.recent_form_length,
            "top_rival_min_matches": self.parameters.top_rival_min_matches,
            "max_workers": self.parameters.max_workers,
            "timeout_seconds": self.parameters.timeout_seconds,
        }


def load_insights_config(file_path: Path) -> InsightsConfig:
    """Load and validate one insights TOML file."""
    return _parse_insights_config(read_toml(file_path), file_path)


def load_insights_configs(config_dir: Path) -> list[InsightsConfig]:
    """Load and validate all insights TOML config files in a directory."""
    return load_system_configs(
        config_dir,
        _parse_insights_config,
        duplicate_name_label="insights",
    )


def _parse_insights_config(raw: dict[str, Any], file_path: Path) -> InsightsConfig:
    name, description, lookback_days = parse_system_section(raw, file_path)
    insights_raw = raw.get("insights", {})
    defaults = InsightsParameters()

    core_sizes_value = insights_raw.get("core_sizes", list(defaults.core_sizes))
    if not isinstance(core_sizes_value, list):
        raise ValueError(f"{file_path}: [insights].core_sizes must be a list of integers")

    parameters = InsightsParameters(
        min_core_matches=int(insights_raw.get("min_core_matches", defaults.min_core_matches)),
        core_sizes=tuple(sorted({int(size) for size in core_sizes_value})),
        max_core_roster=int(insights_raw.get("max_core_roster", defaults.max_core_roster)),
        max_cores_per_size=int(
            insights_raw.get("max_cores_per_size", defaults.max_cores_per_size)
        ),
        guest_limit=int(insights_raw.get("guest_limit", defaults.guest_limit)),
        min_lineup_matches=int(
            insights_raw.get("min_lineup_matches", defaults.min_lineup_matches)
        ),
        min_configuration_matches=int(
            insights_raw.get("min_configuration_matches", defaults.min_configuration_matches)
        ),
        confidence_medium_min=int(
            insights_raw.get("confidence_medium_min", defaults.confidence_medium_min)
        ),
        confidence_high_min=int(
            insights_raw.get("confidence_high_min", defaults.confidence_high_min)
        ),
        role_combo_min_matches=int(
            insights_raw.get("role_combo_min_matches", defaults.role_combo_min_matches)
        ),
        presence_min_player_matches=int(
            insights_raw.get("presence_min_player_matches", defaults.presence_min_player_matches)
        ),
        recent_form_length=int(
            insights_raw.get("recent_form_length", defaults.recent_form_length)
        ),
        top_rival_min_matches=int(
            insights_raw.get("top_rival_min_matches", defaults.top_rival_min_matches)
        ),
        max_workers=int(insights_raw.get("max_workers", defaults.max_workers)),
        timeout_seconds=float(insights_raw.get("timeout_seconds", defaults.timeout_seconds)),
    )
    _validate_parameters(file_path=file_path, parameters=parameters)

    return InsightsConfig(
        name=name,
        description=description,
        file_path=file_path,
        lookback_days=lookback_days,
        parameters=parameters,
    )


def _validate_parameters(*, file_path: Path, parameters: InsightsParameters) -> None:
    if parameters.min_core_matches <= 0:
        raise ValueError(f"{file_path}: [insights].min_core_matches must be > 0")
    if not parameters.core_sizes:
        raise ValueError(f"{file_path}: [insights].core_sizes must not be empty")
    if any(size < 2 for size in parameters.core_sizes):
        raise ValueError(f"{file_path}: [insights].core_sizes must be >= 2")
    if parameters.max_core_roster < max(parameters.core_sizes):
        raise ValueError(
            f"{file_path}: [insights].max_core_roster must be >= the largest core size"
        )
    if parameters.max_cores_per_size < 0:
        raise ValueError(f"{file_path}: [insights].max_cores_per_size must be >= 0")
    if parameters.guest_limit < 0:
        raise ValueError(f"{file_path}: [insights].guest_limit must be >= 0")
    if parameters.min_lineup_matches <= 0:
        raise ValueError(f"{file_path}: [insights].min_lineup_matches must be > 0")
    if parameters.min_configuration_matches <= 0:
        raise ValueError(f"{file_path}: [insights].min_configuration_matches must be > 0")
    if parameters.confidence_medium_min <= 0:
        raise ValueError(f"{file_path}: [insights].confidence_medium_min must be > 0")
    if parameters.confidence_high_min <= parameters.confidence_medium_min:
        raise ValueError(
            f"{file_path}: [insights].confidence_high_min must be > confidence_medium_min"
        )
    if parameters.role_combo_min_matches <= 0:
        raise ValueError(f"{file_path}: [insights].role_combo_min_matches must be > 0")
    if parameters.presence_min_player_matches <= 0:
        raise ValueError(f"{file_path}: [insights].presence_min_player_matches must be > 0")
    if parameters.recent_form_length <= 0:
        raise ValueError(f"{file_path}: [insights].recent_form_length must be > 0")
    if parameters.top_rival_min_matches <= 0:
        raise ValueError(f"{file_path}: [insights].top_rival_min_matches must be > 0")
    if parameters.max_workers <= 0:
        raise ValueError(f"{file_path}: [insights].max_workers must be > 0")
    if parameters.timeout_seconds < 0.0:
        raise ValueError(f"{file_path}: [insights].timeout_seconds must be >= 0")


__all__ = ["InsightsConfig", "load_insights_config", "load_insights_configs"]
