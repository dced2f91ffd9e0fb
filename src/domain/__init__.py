"""Board-game statistics domain modules."""

from domain.insights import InsightsParameters, MatchRecord, compute_game_insights

__all__ = ["InsightsParameters", "MatchRecord", "compute_game_insights"]
