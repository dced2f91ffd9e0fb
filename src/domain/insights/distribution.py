"""How often a game is played at each table size."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass

from domain.insights.common import MatchRecord, PlayerRef, match_winner_ids, sort_matches
from domain.insights.parameters import safe_rate


@dataclass(frozen=True)
class PlayerCountShare:
    player_count: int
    match_count: int
    share: float
    focus_win_rate: float | None


@dataclass(frozen=True)
class PlayerCountRecord:
    player_count: int
    match_count: int
    wins: int
    win_rate: float | None


@dataclass(frozen=True)
class PlayerDistribution:
    player: PlayerRef
    counts: tuple[PlayerCountRecord, ...]

    @property
    def total_matches(self) -> int:
        return sum(record.match_count for record in self.counts)


@dataclass(frozen=True)
class PlayerCountDistribution:
    game: tuple[PlayerCountShare, ...]
    per_player: tuple[PlayerDistribution, ...]

    def most_common_player_count(self) -> int | None:
        if not self.game:
            return None
        return min(self.game, key=lambda item: (-item.match_count, item.player_count)).player_count


@dataclass
class _CountTally:
    matches: int = 0
    wins: int = 0
    decided: int = 0


def compute_player_count_distribution(
    matches: Iterable[MatchRecord],
    *,
    focus_player_id: int | None = None,
) -> PlayerCountDistribution:
    """Game-level shares plus every player's results by table size.

    ``focus_win_rate`` is the focus player's win rate at each size, None when
    there is no focus player or they never played that size.
    """
    ordered = [match for match in sort_matches(matches) if match.finished and match.participants]
    match_counts: Counter[int] = Counter()
    focus_tallies: dict[int, _CountTally] = {}
    player_tallies: dict[int, dict[int, _CountTally]] = {}
    players: dict[int, PlayerRef] = {}

    for match in ordered:
        match_counts[match.player_count] += 1
        winners = match_winner_ids(match)
        for participant in match.participants:
            players.setdefault(participant.player_id, participant.player)
            tallies = [
                player_tallies.setdefault(participant.player_id, {}).setdefault(
                    match.player_count, _CountTally()
                )
            ]
            if participant.player_id == focus_player_id:
                tallies.append(focus_tallies.setdefault(match.player_count, _CountTally()))
            for tally in tallies:
                tally.matches += 1
                if winners is not None:
                    tally.decided += 1
                    tally.wins += int(participant.player_id in winners)

    total = len(ordered)
    game = tuple(
        PlayerCountShare(
            player_count=player_count,
            match_count=count,
            share=count / total,
            focus_win_rate=(
                safe_rate(focus_tallies[player_count].wins, focus_tallies[player_count].decided)
                if player_count in focus_tallies
                else None
            ),
        )
        for player_count, count in sorted(match_counts.items())
    )

    per_player = [
        PlayerDistribution(
            player=players[player_id],
            counts=tuple(
                PlayerCountRecord(
                    player_count=player_count,
                    match_count=tally.matches,
                    wins=tally.wins,
                    win_rate=safe_rate(tally.wins, tally.decided),
                )
                for player_count, tally in sorted(by_count.items())
            ),
        )
        for player_id, by_count in player_tallies.items()
    ]
    per_player.sort(
        key=lambda item: (
            item.player.player_id != focus_player_id,
            not item.player.is_user,
            -item.total_matches,
            item.player.name,
            item.player.player_id,
        )
    )
    return PlayerCountDistribution(game=game, per_player=tuple(per_player))


__all__ = [
    "PlayerCountDistribution",
    "PlayerCountRecord",
    "PlayerCountShare",
    "PlayerDistribution",
    "compute_player_count_distribution",
]
