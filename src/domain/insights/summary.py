"""Headline facts drawn from the other insight sections."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from domain.insights.common import PlayerRef
from domain.insights.cores import CoreDetectionResult
from domain.insights.distribution import PlayerCountDistribution
from domain.insights.lineups import Lineup
from domain.insights.parameters import InsightsParameters
from domain.insights.teams import TeamInsights


@dataclass(frozen=True)
class PlayerCountHighlight:
    player_count: int
    match_count: int
    share: float


@dataclass(frozen=True)
class RivalHighlight:
    """The opponent who most often finishes above the focus player."""

    player: PlayerRef
    finishes_above_rate: float
    match_count: int


@dataclass(frozen=True)
class GroupHighlight:
    players: tuple[PlayerRef, ...]
    match_count: int


@dataclass(frozen=True)
class TeamHighlight:
    players: tuple[PlayerRef, ...]
    win_rate: float
    match_count: int


@dataclass(frozen=True)
class InsightsSummary:
    total_matches: int
    most_common_player_count: PlayerCountHighlight | None
    focus_player_count: PlayerCountHighlight | None
    top_rival: RivalHighlight | None
    top_pair: GroupHighlight | None
    top_trio: GroupHighlight | None
    top_group: GroupHighlight | None
    best_team_core: TeamHighlight | None


def build_summary(
    *,
    distribution: PlayerCountDistribution,
    cores: CoreDetectionResult,
    lineups: Sequence[Lineup],
    teams: TeamInsights | None,
    params: InsightsParameters,
    focus_player_id: int | None,
) -> InsightsSummary:
    total_matches = sum(item.match_count for item in distribution.game)

    most_common = None
    if distribution.game:
        best = min(distribution.game, key=lambda item: (-item.match_count, item.player_count))
        most_common = PlayerCountHighlight(
            player_count=best.player_count,
            match_count=best.match_count,
            share=best.share,
        )

    focus_player_count = None
    focus_distribution = next(
        (item for item in distribution.per_player if item.player.player_id == focus_player_id),
        None,
    )
    if focus_distribution is not None and focus_distribution.counts:
        best_record = min(
            focus_distribution.counts,
            key=lambda item: (-item.match_count, item.player_count),
        )
        focus_player_count = PlayerCountHighlight(
            player_count=best_record.player_count,
            match_count=best_record.match_count,
            share=best_record.match_count / focus_distribution.total_matches,
        )

    top_pair = None
    pairs = cores.cores(2)
    if pairs:
        top_pair = GroupHighlight(players=pairs[0].players, match_count=pairs[0].match_count)

    top_trio = None
    trios = cores.cores(3)
    if trios:
        top_trio = GroupHighlight(players=trios[0].players, match_count=trios[0].match_count)

    top_group = None
    group_lineup = next((lineup for lineup in lineups if len(lineup.players) >= 3), None)
    if group_lineup is not None:
        top_group = GroupHighlight(
            players=group_lineup.players,
            match_count=group_lineup.match_count,
        )

    return InsightsSummary(
        total_matches=total_matches,
        most_common_player_count=most_common,
        focus_player_count=focus_player_count,
        top_rival=_top_rival(cores, params, focus_player_id),
        top_pair=top_pair,
        top_trio=top_trio,
        top_group=top_group,
        best_team_core=_best_team_core(teams, params),
    )


def _top_rival(
    cores: CoreDetectionResult,
    params: InsightsParameters,
    focus_player_id: int | None,
) -> RivalHighlight | None:
    if focus_player_id is None:
        return None

    best: RivalHighlight | None = None
    for core in cores.cores(2):
        if focus_player_id not in core.key:
            continue
        opponent_id = core.key[0] if core.key[1] == focus_player_id else core.key[1]
        stat = core.pair(opponent_id, focus_player_id)
        if stat is None or stat.finishes_above_rate is None:
            continue
        if stat.match_count < params.top_rival_min_matches:
            continue
        candidate = RivalHighlight(
            player=stat.player_a,
            finishes_above_rate=stat.finishes_above_rate,
            match_count=stat.match_count,
        )
        if best is None or _rival_key(candidate) < _rival_key(best):
            best = candidate
    return best


def _rival_key(rival: RivalHighlight) -> tuple[float, int, str, int]:
    return (
        -rival.finishes_above_rate,
        -rival.match_count,
        rival.player.name,
        rival.player.player_id,
    )


def _best_team_core(teams: TeamInsights | None, params: InsightsParameters) -> TeamHighlight | None:
    if teams is None:
        return None

    best: TeamHighlight | None = None
    for team_core in teams.cores(2):
        if team_core.team_win_rate is None:
            continue
        if team_core.team_matches < params.min_core_matches:
            continue
        if best is None or team_core.team_win_rate > best.win_rate:
            best = TeamHighlight(
                players=team_core.core.players,
                win_rate=team_core.team_win_rate,
                match_count=team_core.team_matches,
            )
    return best


__all__ = [
    "GroupHighlight",
    "InsightsSummary",
    "PlayerCountHighlight",
    "RivalHighlight",
    "TeamHighlight",
    "build_summary",
]
