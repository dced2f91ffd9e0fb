"""Pairwise records between two players, or a player and a role."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from functools import cmp_to_key

from domain.insights.common import (
    MatchParticipant,
    MatchRecord,
    PlayerRef,
    RoleRef,
    WinCondition,
    match_winner_ids,
    sort_matches,
)
from domain.insights.parameters import safe_rate

# Once both sides have this many decided games, records sort by win rate.
_WIN_RATE_SORT_MIN_GAMES = 10


@dataclass(frozen=True)
class HeadToHeadRecord:
    """Record of ``player`` against ``opponent`` over their shared matches."""

    player: PlayerRef
    opponent: PlayerRef | RoleRef
    shared_matches: int
    competitive_wins: int
    competitive_losses: int
    competitive_ties: int
    coop_wins: int
    coop_losses: int
    team_wins: int
    team_losses: int
    undecided: int
    playtime_seconds: int
    wins: int
    losses: int
    win_rate: float | None


@dataclass
class _Tally:
    shared_matches: int = 0
    competitive_wins: int = 0
    competitive_losses: int = 0
    competitive_ties: int = 0
    coop_wins: int = 0
    coop_losses: int = 0
    team_wins: int = 0
    team_losses: int = 0
    undecided: int = 0
    playtime_seconds: int = 0

    def record(
        self,
        match: MatchRecord,
        winners: frozenset[int] | None,
        player: MatchParticipant,
        opponent_placement: int,
        opponent_won: bool,
        same_team: bool,
    ) -> None:
        self.shared_matches += 1
        self.playtime_seconds += match.duration_seconds

        if match.is_coop:
            if winners is None:
                self.undecided += 1
            elif player.player_id in winners:
                self.coop_wins += 1
            else:
                self.coop_losses += 1
            return

        if match.win_condition is WinCondition.MANUAL:
            if winners is None:
                self.undecided += 1
                return
            player_won = player.player_id in winners
            if player_won and not opponent_won:
                self.competitive_wins += 1
            elif opponent_won and not player_won:
                self.competitive_losses += 1
            else:
                self.competitive_ties += 1
        elif player.placement < opponent_placement:
            self.competitive_wins += 1
        elif player.placement > opponent_placement:
            self.competitive_losses += 1
        else:
            self.competitive_ties += 1

        if same_team and winners is not None:
            if player.player_id in winners:
                self.team_wins += 1
            else:
                self.team_losses += 1

    def freeze(self, player: PlayerRef, opponent: PlayerRef | RoleRef) -> HeadToHeadRecord:
        wins = self.competitive_wins + self.coop_wins
        losses = self.competitive_losses + self.coop_losses
        return HeadToHeadRecord(
            player=player,
            opponent=opponent,
            shared_matches=self.shared_matches,
            competitive_wins=self.competitive_wins,
            competitive_losses=self.competitive_losses,
            competitive_ties=self.competitive_ties,
            coop_wins=self.coop_wins,
            coop_losses=self.coop_losses,
            team_wins=self.team_wins,
            team_losses=self.team_losses,
            undecided=self.undecided,
            playtime_seconds=self.playtime_seconds,
            wins=wins,
            losses=losses,
            win_rate=safe_rate(wins, wins + losses),
        )


class HeadToHeadAnalyzer:
    """Stateful pairwise tracker over every ordered pair of co-participants.

    When ``focus_player_id`` is set only pairs starting with that player are
    tracked.
    """

    def __init__(self, *, focus_player_id: int | None = None) -> None:
        self.focus_player_id = focus_player_id
        self._tallies: dict[tuple[int, int], _Tally] = {}
        self._players: dict[int, PlayerRef] = {}

    def tracked_pair_count(self) -> int:
        return len(self._tallies)

    def process_match(self, match: MatchRecord) -> None:
        if not match.finished:
            return
        winners = match_winner_ids(match)
        for player in match.participants:
            if self.focus_player_id is not None and player.player_id != self.focus_player_id:
                continue
            self._players.setdefault(player.player_id, player.player)
            for opponent in match.participants:
                if opponent.player_id == player.player_id:
                    continue
                self._players.setdefault(opponent.player_id, opponent.player)
                tally = self._tallies.setdefault((player.player_id, opponent.player_id), _Tally())
                tally.record(
                    match,
                    winners,
                    player,
                    opponent_placement=opponent.placement,
                    opponent_won=winners is not None and opponent.player_id in winners,
                    same_team=player.team_id is not None and player.team_id == opponent.team_id,
                )

    def record(self, player_id: int, opponent_id: int) -> HeadToHeadRecord | None:
        tally = self._tallies.get((player_id, opponent_id))
        if tally is None:
            return None
        return tally.freeze(self._players[player_id], self._players[opponent_id])

    def records_for(self, player_id: int) -> list[HeadToHeadRecord]:
        records = [
            tally.freeze(self._players[player_id], self._players[opponent_id])
            for (subject_id, opponent_id), tally in self._tallies.items()
            if subject_id == player_id
        ]
        return sort_head_to_head_records(records)


def _compare_records(left: HeadToHeadRecord, right: HeadToHeadRecord) -> int:
    left_games = left.wins + left.losses
    right_games = right.wins + right.losses
    if left_games > _WIN_RATE_SORT_MIN_GAMES and right_games > _WIN_RATE_SORT_MIN_GAMES:
        left_rate = left.win_rate or 0.0
        right_rate = right.win_rate or 0.0
        if left_rate != right_rate:
            return -1 if left_rate > right_rate else 1
    elif left_games != right_games:
        return right_games - left_games
    if left.opponent.name != right.opponent.name:
        return -1 if left.opponent.name < right.opponent.name else 1
    return _opponent_id(left) - _opponent_id(right)


def _opponent_id(record: HeadToHeadRecord) -> int:
    if isinstance(record.opponent, RoleRef):
        return record.opponent.role_id
    return record.opponent.player_id


def sort_head_to_head_records(records: list[HeadToHeadRecord]) -> list[HeadToHeadRecord]:
    """Most decided games first; by win rate once both sides have a real sample."""
    return sorted(records, key=cmp_to_key(_compare_records))


def head_to_head(
    matches: Iterable[MatchRecord],
    player_id: int,
    opponent_id: int,
) -> HeadToHeadRecord | None:
    """Record of one player against another, or None if they never met."""
    analyzer = HeadToHeadAnalyzer(focus_player_id=player_id)
    for match in sort_matches(matches):
        analyzer.process_match(match)
    return analyzer.record(player_id, opponent_id)


def head_to_head_for_player(
    matches: Iterable[MatchRecord],
    player_id: int,
) -> list[HeadToHeadRecord]:
    analyzer = HeadToHeadAnalyzer(focus_player_id=player_id)
    for match in sort_matches(matches):
        analyzer.process_match(match)
    return analyzer.records_for(player_id)


def head_to_head_vs_role(
    matches: Iterable[MatchRecord],
    player_id: int,
    role_id: int,
) -> HeadToHeadRecord | None:
    """Record of a player against whoever else held ``role_id``.

    The role side takes the best placement among its holders and counts as a
    winner when any holder won.
    """
    tally = _Tally()
    player_ref: PlayerRef | None = None
    role_ref: RoleRef | None = None

    for match in sort_matches(matches):
        if not match.finished:
            continue
        player = match.participant(player_id)
        if player is None:
            continue
        holders = [
            participant
            for participant in match.participants
            if participant.player_id != player_id and role_id in participant.role_ids
        ]
        if not holders:
            continue

        player_ref = player_ref or player.player
        if role_ref is None:
            role_ref = next(role for role in holders[0].roles if role.role_id == role_id)

        winners = match_winner_ids(match)
        tally.record(
            match,
            winners,
            player,
            opponent_placement=min(holder.placement for holder in holders),
            opponent_won=winners is not None
            and any(holder.player_id in winners for holder in holders),
            same_team=player.team_id is not None
            and any(holder.team_id == player.team_id for holder in holders),
        )

    if player_ref is None or role_ref is None:
        return None
    return tally.freeze(player_ref, role_ref)


__all__ = [
    "HeadToHeadAnalyzer",
    "HeadToHeadRecord",
    "head_to_head",
    "head_to_head_for_player",
    "head_to_head_vs_role",
    "sort_head_to_head_records",
]
