"""Exact full-roster lineups that recur across matches."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from domain.insights.common import MatchRecord, PlayerRef, collect_players, sort_matches
from domain.insights.parameters import InsightsParameters


@dataclass(frozen=True)
class LineupMatch:
    match_id: int
    match_date: datetime


@dataclass(frozen=True)
class Lineup:
    """A complete match roster seen at least ``min_lineup_matches`` times.

    Unlike a core, every participant of each listed match belongs to the lineup.
    """

    key: tuple[int, ...]
    players: tuple[PlayerRef, ...]
    match_count: int
    matches: tuple[LineupMatch, ...]

    @property
    def match_ids(self) -> tuple[int, ...]:
        return tuple(item.match_id for item in self.matches)


def detect_lineups(
    matches: Iterable[MatchRecord],
    params: InsightsParameters | None = None,
) -> list[Lineup]:
    params = params or InsightsParameters()
    ordered = [match for match in sort_matches(matches) if match.finished and match.participants]
    players = collect_players(ordered)

    grouped: dict[tuple[int, ...], list[MatchRecord]] = {}
    for match in ordered:
        grouped.setdefault(match.player_ids, []).append(match)

    lineups = [
        Lineup(
            key=key,
            players=tuple(players[player_id] for player_id in key),
            match_count=len(lineup_matches),
            matches=tuple(
                LineupMatch(match_id=match.match_id, match_date=match.match_date)
                for match in reversed(lineup_matches)
            ),
        )
        for key, lineup_matches in grouped.items()
        if len(lineup_matches) >= params.min_lineup_matches
    ]
    lineups.sort(key=lambda item: (-item.match_count, item.key))
    return lineups


__all__ = ["Lineup", "LineupMatch", "detect_lineups"]
