"""Policy constants shared by the insight components."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ConfidenceTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class InsightsParameters:
    """Thresholds and caps applied consistently across every section.

    ``max_cores_per_size`` and ``timeout_seconds`` treat 0 as "no limit".
    """

    min_core_matches: int = 3
    core_sizes: tuple[int, ...] = (2, 3, 4)
    max_core_roster: int = 16
    max_cores_per_size: int = 0
    guest_limit: int = 5
    min_lineup_matches: int = 2
    min_configuration_matches: int = 2
    confidence_medium_min: int = 5
    confidence_high_min: int = 16
    role_combo_min_matches: int = 5
    presence_min_player_matches: int = 5
    recent_form_length: int = 10
    top_rival_min_matches: int = 3
    max_workers: int = 4
    timeout_seconds: float = 0.0

    def confidence(self, sample_size: int) -> ConfidenceTier:
        if sample_size >= self.confidence_high_min:
            return ConfidenceTier.HIGH
        if sample_size >= self.confidence_medium_min:
            return ConfidenceTier.MEDIUM
        return ConfidenceTier.LOW


def safe_rate(numerator: int | float, denominator: int | float) -> float | None:
    """Ratio or None when the denominator is zero."""
    if denominator <= 0:
        return None
    return numerator / denominator


def safe_mean(values: list[float] | list[int]) -> float | None:
    if not values:
        return None
    return sum(values) / len(values)


__all__ = ["ConfidenceTier", "InsightsParameters", "safe_mean", "safe_rate"]
