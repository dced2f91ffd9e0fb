"""Facade that fans the insight sections out and joins their results."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from functools import partial
import logging
import time
from typing import Any

from domain.insights.common import MatchRecord, PlayerRef, sort_matches, validate_matches
from domain.insights.cores import CoreDetectionResult, detect_cores
from domain.insights.distribution import (
    PlayerCountDistribution,
    compute_player_count_distribution,
)
from domain.insights.head_to_head import HeadToHeadRecord, head_to_head_for_player
from domain.insights.lineups import Lineup, detect_lineups
from domain.insights.parameters import InsightsParameters
from domain.insights.player_stats import PlayerStatsSummary, aggregate_player_stats
from domain.insights.roles import RoleInsights, analyze_roles
from domain.insights.summary import InsightsSummary, build_summary
from domain.insights.teams import TeamInsights, analyze_teams

logger = logging.getLogger(__name__)


class InsightsTimeoutError(TimeoutError):
    """Raised when the sections do not finish within the configured timeout."""


@dataclass(frozen=True)
class GameInsights:
    """Every insight section computed from one match snapshot."""

    matches_analyzed: int
    focus_player: PlayerRef | None
    summary: InsightsSummary
    player_stats: tuple[PlayerStatsSummary, ...]
    head_to_head: tuple[HeadToHeadRecord, ...]
    roles: RoleInsights
    cores: CoreDetectionResult
    lineups: tuple[Lineup, ...]
    teams: TeamInsights | None
    distribution: PlayerCountDistribution


def resolve_focus_player(
    matches: Iterable[MatchRecord],
    focus_player_id: int | None = None,
) -> PlayerRef | None:
    """Explicit focus player, else the first participant flagged as the user."""
    for match in matches:
        for participant in match.participants:
            if focus_player_id is not None:
                if participant.player_id == focus_player_id:
                    return participant.player
            elif participant.player.is_user:
                return participant.player
    return None


def compute_game_insights(
    matches: Iterable[MatchRecord],
    params: InsightsParameters | None = None,
    *,
    focus_player_id: int | None = None,
) -> GameInsights:
    """Compute all sections for one game's finished matches.

    Sections share the immutable snapshot and run on a thread pool. A single
    timeout (``params.timeout_seconds``; 0 disables it) bounds the whole run.
    """
    params = params or InsightsParameters()
    ordered = [match for match in sort_matches(matches) if match.finished]
    validate_matches(ordered)

    focus_player = resolve_focus_player(ordered, focus_player_id)
    focus_id = focus_player.player_id if focus_player is not None else None

    tasks: dict[str, Callable[[], Any]] = {
        "player_stats": partial(aggregate_player_stats, ordered, params),
        "roles": partial(analyze_roles, ordered, params),
        "cores": partial(detect_cores, ordered, params),
        "lineups": partial(detect_lineups, ordered, params),
        "teams": partial(analyze_teams, ordered, params),
        "distribution": partial(
            compute_player_count_distribution, ordered, focus_player_id=focus_id
        ),
    }
    if focus_id is not None:
        tasks["head_to_head"] = partial(head_to_head_for_player, ordered, focus_id)

    started = time.perf_counter()
    results = _run_sections(tasks, params)
    logger.debug(
        "Computed %s insight sections over %s matches in %.3fs",
        len(tasks),
        len(ordered),
        time.perf_counter() - started,
    )

    cores: CoreDetectionResult = results["cores"]
    lineups: list[Lineup] = results["lineups"]
    teams: TeamInsights | None = results["teams"]
    distribution: PlayerCountDistribution = results["distribution"]
    summary = build_summary(
        distribution=distribution,
        cores=cores,
        lineups=lineups,
        teams=teams,
        params=params,
        focus_player_id=focus_id,
    )

    return GameInsights(
        matches_analyzed=len(ordered),
        focus_player=focus_player,
        summary=summary,
        player_stats=tuple(results["player_stats"]),
        head_to_head=tuple(results.get("head_to_head", ())),
        roles=results["roles"],
        cores=cores,
        lineups=tuple(lineups),
        teams=teams,
        distribution=distribution,
    )


def _run_sections(
    tasks: dict[str, Callable[[], Any]],
    params: InsightsParameters,
) -> dict[str, Any]:
    timeout = params.timeout_seconds if params.timeout_seconds > 0 else None
    executor = ThreadPoolExecutor(
        max_workers=min(params.max_workers, len(tasks)),
        thread_name_prefix="insights",
    )
    try:
        futures: dict[str, Future[Any]] = {
            name: executor.submit(task) for name, task in tasks.items()
        }
        done, pending = wait(futures.values(), timeout=timeout, return_when=FIRST_EXCEPTION)
        if pending:
            for future in done:
                error = future.exception()
                if error is not None:
                    raise error
            unfinished = sorted(name for name, future in futures.items() if future in pending)
            raise InsightsTimeoutError(
                f"Insight sections did not finish within {params.timeout_seconds}s: "
                f"{', '.join(unfinished)}"
            )
        return {name: future.result() for name, future in futures.items()}
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


__all__ = [
    "GameInsights",
    "InsightsTimeoutError",
    "compute_game_insights",
    "resolve_focus_player",
]
