"""Fetch-and-compute pipeline for one game's insights."""

from __future__ import annotations

from collections.abc import Callable
import logging

from sqlalchemy.orm import Session, sessionmaker

from domain.insights.config import InsightsConfig
from domain.insights.engine import GameInsights, compute_game_insights
from repositories.match_source import fetch_game_matches

logger = logging.getLogger(__name__)


def run_game_insights(
    *,
    session_factory: sessionmaker[Session],
    game_id: int,
    config: InsightsConfig,
    focus_player_id: int | None = None,
    echo: Callable[[str], None] | None = None,
) -> GameInsights:
    """Load the game's finished matches and compute every insight section."""
    lookback_days = None if config.lookback_days == 0 else config.lookback_days

    with session_factory() as session:
        matches = fetch_game_matches(session, game_id, lookback_days)

    logger.info(
        "Loaded %s finished matches for game_id=%s config=%s",
        len(matches),
        game_id,
        config.name,
    )
    insights = compute_game_insights(
        matches,
        config.parameters,
        focus_player_id=focus_player_id,
    )

    if echo is not None:
        focus = insights.focus_player.name if insights.focus_player is not None else "-"
        echo(
            f"game_id={game_id} "
            f"config={config.file_path.name} "
            f"matches={insights.matches_analyzed} "
            f"players={len(insights.player_stats)} "
            f"focus={focus} "
            f"pairs={len(insights.cores.cores(2))} "
            f"trios={len(insights.cores.cores(3))} "
            f"quartets={len(insights.cores.cores(4))} "
            f"lineups={len(insights.lineups)}"
        )
    return insights


__all__ = ["run_game_insights"]
