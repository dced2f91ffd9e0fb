"""Per-player win/loss, placement and streak summaries."""

from __future__ import annotations

from collections import Counter, deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from domain.insights.common import (
    MatchParticipant,
    MatchRecord,
    PlayerRef,
    WinCondition,
    match_winner_ids,
    sort_matches,
)
from domain.insights.parameters import InsightsParameters, safe_mean, safe_rate


class Outcome(str, Enum):
    WIN = "win"
    LOSS = "loss"


@dataclass(frozen=True)
class Streak:
    type: Outcome
    count: int


@dataclass(frozen=True)
class PlayerCountBucket:
    """Performance of one player at a given table size."""

    player_count: int
    plays: int
    wins: int
    losses: int
    win_rate: float | None
    placements: dict[int, int]


@dataclass(frozen=True)
class PlayerStatsSummary:
    player: PlayerRef
    matches: int
    wins: int
    losses: int
    undecided: int
    win_rate: float | None
    placements: dict[int, int]
    player_count_buckets: tuple[PlayerCountBucket, ...]
    current_streak: Streak | None
    longest_win_streak: int
    longest_loss_streak: int
    recent_form: tuple[Outcome, ...]
    competitive_matches: int
    competitive_wins: int
    competitive_win_rate: float | None
    coop_matches: int
    coop_wins: int
    coop_win_rate: float | None
    playtime_seconds: int
    average_score: float | None
    best_score: float | None
    worst_score: float | None


@dataclass
class _BucketState:
    plays: int = 0
    wins: int = 0
    losses: int = 0
    placements: Counter[int] = field(default_factory=Counter)


@dataclass
class _PlayerState:
    player: PlayerRef
    recent_form: deque[Outcome]
    matches: int = 0
    wins: int = 0
    losses: int = 0
    undecided: int = 0
    placements: Counter[int] = field(default_factory=Counter)
    buckets: dict[int, _BucketState] = field(default_factory=dict)
    current_type: Outcome | None = None
    current_count: int = 0
    longest_win: int = 0
    longest_loss: int = 0
    competitive_matches: int = 0
    competitive_wins: int = 0
    competitive_decided: int = 0
    coop_matches: int = 0
    coop_wins: int = 0
    coop_decided: int = 0
    playtime_seconds: int = 0
    scores: list[float] = field(default_factory=list)
    best_score: float | None = None
    worst_score: float | None = None


class PlayerStatsAggregator:
    """Stateful chronological aggregator.

    Matches must be fed in ascending (date, id) order so streaks and recent
    form reflect play history. Matches without a determinable outcome count as
    plays but never as wins or losses.
    """

    def __init__(self, params: InsightsParameters | None = None) -> None:
        self.params = params or InsightsParameters()
        self._players: dict[int, _PlayerState] = {}

    def tracked_player_count(self) -> int:
        return len(self._players)

    def process_match(self, match: MatchRecord) -> None:
        if not match.finished or not match.participants:
            return

        winners = match_winner_ids(match)
        for participant in match.participants:
            state = self._players.get(participant.player_id)
            if state is None:
                state = _PlayerState(
                    player=participant.player,
                    recent_form=deque(maxlen=self.params.recent_form_length),
                )
                self._players[participant.player_id] = state
            outcome = None
            if winners is not None:
                outcome = Outcome.WIN if participant.player_id in winners else Outcome.LOSS
            self._apply(state, match, participant, outcome)

    def summary(self, player_id: int) -> PlayerStatsSummary | None:
        state = self._players.get(player_id)
        if state is None:
            return None
        return _build_summary(state)

    def summaries(self) -> list[PlayerStatsSummary]:
        """All tracked players, most active first."""
        results = [_build_summary(state) for state in self._players.values()]
        results.sort(
            key=lambda item: (
                -item.matches,
                -(item.win_rate if item.win_rate is not None else -1.0),
                item.player.name,
                item.player.player_id,
            )
        )
        return results

    def _apply(
        self,
        state: _PlayerState,
        match: MatchRecord,
        participant: MatchParticipant,
        outcome: Outcome | None,
    ) -> None:
        state.matches += 1
        state.playtime_seconds += match.duration_seconds

        bucket = state.buckets.setdefault(match.player_count, _BucketState())
        bucket.plays += 1
        if not match.is_coop:
            state.placements[participant.placement] += 1
            bucket.placements[participant.placement] += 1

        if match.is_coop:
            state.coop_matches += 1
        else:
            state.competitive_matches += 1

        if participant.score is not None:
            self._apply_score(state, match.win_condition, participant.score)

        if outcome is None:
            state.undecided += 1
            return

        won = outcome is Outcome.WIN
        if won:
            state.wins += 1
            bucket.wins += 1
        else:
            state.losses += 1
            bucket.losses += 1

        if match.is_coop:
            state.coop_decided += 1
            state.coop_wins += int(won)
        else:
            state.competitive_decided += 1
            state.competitive_wins += int(won)

        if state.current_type is outcome:
            state.current_count += 1
        else:
            state.current_type = outcome
            state.current_count = 1
        if won:
            state.longest_win = max(state.longest_win, state.current_count)
        else:
            state.longest_loss = max(state.longest_loss, state.current_count)

        state.recent_form.appendleft(outcome)

    @staticmethod
    def _apply_score(state: _PlayerState, win_condition: WinCondition, score: float) -> None:
        state.scores.append(score)
        if win_condition is WinCondition.HIGHEST_SCORE:
            higher_is_better = True
        elif win_condition is WinCondition.LOWEST_SCORE:
            higher_is_better = False
        else:
            return

        if state.best_score is None or state.worst_score is None:
            state.best_score = score
            state.worst_score = score
        elif higher_is_better:
            state.best_score = max(state.best_score, score)
            state.worst_score = min(state.worst_score, score)
        else:
            state.best_score = min(state.best_score, score)
            state.worst_score = max(state.worst_score, score)


def _build_summary(state: _PlayerState) -> PlayerStatsSummary:
    buckets = tuple(
        PlayerCountBucket(
            player_count=player_count,
            plays=bucket.plays,
            wins=bucket.wins,
            losses=bucket.losses,
            win_rate=safe_rate(bucket.wins, bucket.wins + bucket.losses),
            placements=dict(sorted(bucket.placements.items())),
        )
        for player_count, bucket in sorted(state.buckets.items())
    )
    current_streak = None
    if state.current_type is not None:
        current_streak = Streak(type=state.current_type, count=state.current_count)

    return PlayerStatsSummary(
        player=state.player,
        matches=state.matches,
        wins=state.wins,
        losses=state.losses,
        undecided=state.undecided,
        win_rate=safe_rate(state.wins, state.wins + state.losses),
        placements=dict(sorted(state.placements.items())),
        player_count_buckets=buckets,
        current_streak=current_streak,
        longest_win_streak=state.longest_win,
        longest_loss_streak=state.longest_loss,
        recent_form=tuple(state.recent_form),
        competitive_matches=state.competitive_matches,
        competitive_wins=state.competitive_wins,
        competitive_win_rate=safe_rate(state.competitive_wins, state.competitive_decided),
        coop_matches=state.coop_matches,
        coop_wins=state.coop_wins,
        coop_win_rate=safe_rate(state.coop_wins, state.coop_decided),
        playtime_seconds=state.playtime_seconds,
        average_score=safe_mean(state.scores),
        best_score=state.best_score,
        worst_score=state.worst_score,
    )


def aggregate_player_stats(
    matches: Iterable[MatchRecord],
    params: InsightsParameters | None = None,
) -> list[PlayerStatsSummary]:
    aggregator = PlayerStatsAggregator(params)
    for match in sort_matches(matches):
        aggregator.process_match(match)
    return aggregator.summaries()


def summarize_player(
    matches: Iterable[MatchRecord],
    player_id: int,
    params: InsightsParameters | None = None,
) -> PlayerStatsSummary | None:
    """Summary for one player, or None if they never played."""
    aggregator = PlayerStatsAggregator(params)
    for match in sort_matches(matches):
        aggregator.process_match(match)
    return aggregator.summary(player_id)


__all__ = [
    "Outcome",
    "PlayerCountBucket",
    "PlayerStatsAggregator",
    "PlayerStatsSummary",
    "Streak",
    "aggregate_player_stats",
    "summarize_player",
]
