"""Same-team cores and recurring team-vs-team configurations."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
import logging

from domain.insights.common import (
    MatchRecord,
    PlayerRef,
    collect_players,
    match_winner_ids,
    sort_matches,
    team_won,
)
from domain.insights.cores import (
    CoreKey,
    DetectedCore,
    GroupCoreDetector,
    count_co_occurrences,
    team_rosters,
)
from domain.insights.parameters import InsightsParameters, safe_rate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TeamCore:
    core: DetectedCore
    team_wins: int
    team_matches: int
    team_win_rate: float | None

    @property
    def key(self) -> CoreKey:
        return self.core.key

    @property
    def match_count(self) -> int:
        return self.core.match_count


@dataclass(frozen=True)
class TeamSlot:
    players: tuple[PlayerRef, ...]
    team_name: str
    wins: int


@dataclass(frozen=True)
class TeamConfiguration:
    key: tuple[CoreKey, ...]
    label: str
    teams: tuple[TeamSlot, ...]
    match_count: int
    match_ids: tuple[int, ...]


@dataclass(frozen=True)
class TeamInsights:
    cores_by_size: dict[int, tuple[TeamCore, ...]]
    configurations: tuple[TeamConfiguration, ...]

    def cores(self, size: int) -> tuple[TeamCore, ...]:
        return self.cores_by_size.get(size, ())


class TeamCompositionAnalyzer:
    """Core detection restricted to teammates, plus matchup shapes."""

    def __init__(self, params: InsightsParameters | None = None) -> None:
        self.params = params or InsightsParameters()
        self._core_detector = GroupCoreDetector(self.params)

    def analyze(self, matches: Iterable[MatchRecord]) -> TeamInsights | None:
        """Return None when no match in the history uses teams."""
        team_matches = [
            match for match in sort_matches(matches) if match.finished and match.has_teams
        ]
        if not team_matches:
            return None

        players = collect_players(team_matches)
        by_id = {match.match_id: match for match in team_matches}

        cores_by_size: dict[int, tuple[TeamCore, ...]] = {}
        for size in self.params.core_sizes:
            occurrences, _ = count_co_occurrences(
                team_matches,
                size,
                max_roster=self.params.max_core_roster,
                groups=team_rosters,
            )
            candidates = sorted(
                (
                    (key, match_ids)
                    for key, match_ids in occurrences.items()
                    if len(match_ids) >= self.params.min_core_matches
                ),
                key=lambda item: (-len(item[1]), item[0]),
            )
            if self.params.max_cores_per_size > 0:
                candidates = candidates[: self.params.max_cores_per_size]
            cores_by_size[size] = tuple(
                self._build_team_core(key, [by_id[match_id] for match_id in match_ids], players)
                for key, match_ids in candidates
            )
            logger.debug("Detected %s team cores of size %s", len(cores_by_size[size]), size)

        return TeamInsights(
            cores_by_size=cores_by_size,
            configurations=tuple(self._configurations(team_matches, players)),
        )

    def _build_team_core(
        self,
        key: CoreKey,
        core_matches: Sequence[MatchRecord],
        players: dict[int, PlayerRef],
    ) -> TeamCore:
        core = self._core_detector.build_core(key, core_matches, players)
        wins = 0
        decided = 0
        for match in core_matches:
            winners = match_winner_ids(match)
            anchor = match.participant(key[0])
            if winners is None or anchor is None or anchor.team_id is None:
                continue
            decided += 1
            wins += int(team_won(match, anchor.team_id, winners))
        return TeamCore(
            core=core,
            team_wins=wins,
            team_matches=decided,
            team_win_rate=safe_rate(wins, decided),
        )

    def _configurations(
        self,
        matches: Sequence[MatchRecord],
        players: dict[int, PlayerRef],
    ) -> list[TeamConfiguration]:
        grouped: dict[tuple[CoreKey, ...], list[MatchRecord]] = {}
        names: dict[tuple[CoreKey, ...], list[str]] = {}
        wins: dict[tuple[CoreKey, ...], list[int]] = {}

        for match in matches:
            rosters: dict[int, list[int]] = {}
            for participant in match.participants:
                if participant.team_id is not None:
                    rosters.setdefault(participant.team_id, []).append(participant.player_id)
            if len(rosters) < 2:
                continue

            slots = sorted(
                (tuple(sorted(player_ids)), team_id) for team_id, player_ids in rosters.items()
            )
            key = tuple(roster for roster, _ in slots)
            if key not in grouped:
                grouped[key] = []
                names[key] = [
                    match.team_name(team_id) or f"Team {team_id}" for _, team_id in slots
                ]
                wins[key] = [0] * len(slots)
            grouped[key].append(match)

            winners = match_winner_ids(match)
            if winners is None:
                continue
            for index, (_, team_id) in enumerate(slots):
                wins[key][index] += int(team_won(match, team_id, winners))

        configurations = []
        for key, config_matches in grouped.items():
            if len(config_matches) < self.params.min_configuration_matches:
                continue
            teams = tuple(
                TeamSlot(
                    players=tuple(players[player_id] for player_id in roster),
                    team_name=names[key][index],
                    wins=wins[key][index],
                )
                for index, roster in enumerate(key)
            )
            configurations.append(
                TeamConfiguration(
                    key=key,
                    label=" vs ".join(
                        "+".join(player.name for player in slot.players) for slot in teams
                    ),
                    teams=teams,
                    match_count=len(config_matches),
                    match_ids=tuple(match.match_id for match in config_matches),
                )
            )
        configurations.sort(key=lambda item: (-item.match_count, item.key))
        return configurations


def analyze_teams(
    matches: Iterable[MatchRecord],
    params: InsightsParameters | None = None,
) -> TeamInsights | None:
    return TeamCompositionAnalyzer(params).analyze(matches)


__all__ = [
    "TeamCompositionAnalyzer",
    "TeamConfiguration",
    "TeamCore",
    "TeamInsights",
    "TeamSlot",
    "analyze_teams",
]
