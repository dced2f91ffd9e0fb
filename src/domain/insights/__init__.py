"""Game statistics and social-insight components."""

from domain.insights.common import (
    MatchParticipant,
    MatchRecord,
    MatchValidationError,
    PlayerRef,
    RoleRef,
    TeamRef,
    WinCondition,
    match_winner_ids,
    validate_matches,
)
from domain.insights.engine import GameInsights, InsightsTimeoutError, compute_game_insights
from domain.insights.parameters import ConfidenceTier, InsightsParameters

__all__ = [
    "ConfidenceTier",
    "GameInsights",
    "InsightsParameters",
    "InsightsTimeoutError",
    "MatchParticipant",
    "MatchRecord",
    "MatchValidationError",
    "PlayerRef",
    "RoleRef",
    "TeamRef",
    "WinCondition",
    "compute_game_insights",
    "match_winner_ids",
    "validate_matches",
]
