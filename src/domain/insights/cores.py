"""Recurring player subsets ("cores") and their comparative statistics."""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from itertools import combinations, permutations
import logging

from domain.insights.common import (
    MatchParticipant,
    MatchRecord,
    PlayerRef,
    WinCondition,
    collect_players,
    match_winner_ids,
    sort_matches,
)
from domain.insights.parameters import ConfidenceTier, InsightsParameters, safe_mean, safe_rate

logger = logging.getLogger(__name__)

CoreKey = tuple[int, ...]
RosterGroups = Callable[[MatchRecord], Iterable[Sequence[int]]]


@dataclass(frozen=True)
class PlayerCountBucketStat:
    bucket: str
    match_count: int
    finishes_above_rate: float | None
    avg_placement_delta: float | None
    avg_score_delta: float | None


@dataclass(frozen=True)
class PairwiseStat:
    """How ``player_a`` fared against ``player_b`` in the core's shared matches.

    Positive deltas mean A did better: ``avg_placement_delta`` is the mean of
    B's placement minus A's, and ``avg_score_delta`` follows the sheet's win
    condition.
    """

    player_a: PlayerRef
    player_b: PlayerRef
    match_count: int
    finishes_above_rate: float | None
    avg_placement_delta: float | None
    avg_score_delta: float | None
    confidence: ConfidenceTier
    by_player_count: tuple[PlayerCountBucketStat, ...]


@dataclass(frozen=True)
class GroupOrderingEntry:
    player: PlayerRef
    rank: int
    avg_placement: float | None
    wins: int
    losses: int
    win_rate: float | None


@dataclass(frozen=True)
class GuestEntry:
    player: PlayerRef
    count: int


@dataclass(frozen=True)
class DetectedCore:
    key: CoreKey
    players: tuple[PlayerRef, ...]
    match_count: int
    match_ids: tuple[int, ...]
    stability: float
    confidence: ConfidenceTier
    pairwise_stats: tuple[PairwiseStat, ...]
    group_ordering: tuple[GroupOrderingEntry, ...]
    guests: tuple[GuestEntry, ...]

    @property
    def size(self) -> int:
        return len(self.key)

    def pair(self, player_a_id: int, player_b_id: int) -> PairwiseStat | None:
        for stat in self.pairwise_stats:
            if stat.player_a.player_id == player_a_id and stat.player_b.player_id == player_b_id:
                return stat
        return None


@dataclass(frozen=True)
class CoreDetectionResult:
    cores_by_size: dict[int, tuple[DetectedCore, ...]]
    skipped_match_ids: tuple[int, ...]

    def cores(self, size: int) -> tuple[DetectedCore, ...]:
        return self.cores_by_size.get(size, ())

    def find(self, player_ids: Iterable[int]) -> DetectedCore | None:
        key = tuple(sorted(player_ids))
        for core in self.cores(len(key)):
            if core.key == key:
                return core
        return None


@dataclass
class _ComparisonTally:
    above: int = 0
    total: int = 0
    placement_deltas: list[int] = field(default_factory=list)
    score_deltas: list[float] = field(default_factory=list)


@dataclass
class _PairTally(_ComparisonTally):
    buckets: dict[str, _ComparisonTally] = field(default_factory=dict)


def player_count_bucket(player_count: int) -> str:
    if player_count <= 4:
        return f"{player_count}p"
    if player_count <= 6:
        return "5-6p"
    return "7+p"


def _bucket_sort_key(bucket: str) -> int:
    return int(bucket.split("p")[0].split("-")[0].rstrip("+"))


def full_roster(match: MatchRecord) -> Iterator[Sequence[int]]:
    yield match.player_ids


def team_rosters(match: MatchRecord) -> Iterator[Sequence[int]]:
    """Sorted player ids per team in one match."""
    groups: dict[int, list[int]] = {}
    for participant in match.participants:
        if participant.team_id is None:
            continue
        groups.setdefault(participant.team_id, []).append(participant.player_id)
    for team_id in sorted(groups):
        yield tuple(sorted(groups[team_id]))


def count_co_occurrences(
    matches: Iterable[MatchRecord],
    size: int,
    *,
    max_roster: int,
    groups: RosterGroups = full_roster,
) -> tuple[dict[CoreKey, list[int]], list[int]]:
    """Map every k-subset of each roster group to the matches it appears in.

    Returns the occurrence map and the ids of matches skipped because a group
    exceeded ``max_roster``.
    """
    occurrences: dict[CoreKey, list[int]] = {}
    skipped: list[int] = []
    for match in matches:
        match_groups = [tuple(sorted(group)) for group in groups(match)]
        if any(len(group) > max_roster for group in match_groups):
            skipped.append(match.match_id)
            continue
        for group in match_groups:
            if len(group) < size:
                continue
            for combo in combinations(group, size):
                occurrences.setdefault(combo, []).append(match.match_id)
    return occurrences, skipped


class GroupCoreDetector:
    """Detect cores of each configured size over one game's match history."""

    def __init__(self, params: InsightsParameters | None = None) -> None:
        self.params = params or InsightsParameters()

    def detect(self, matches: Iterable[MatchRecord]) -> CoreDetectionResult:
        ordered = [match for match in sort_matches(matches) if match.finished]
        by_id = {match.match_id: match for match in ordered}
        players = collect_players(ordered)

        cores_by_size: dict[int, tuple[DetectedCore, ...]] = {}
        skipped_ids: set[int] = set()
        for size in self.params.core_sizes:
            occurrences, skipped = count_co_occurrences(
                ordered, size, max_roster=self.params.max_core_roster
            )
            skipped_ids.update(skipped)
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
                self.build_core(key, [by_id[match_id] for match_id in match_ids], players)
                for key, match_ids in candidates
            )
            logger.debug("Detected %s cores of size %s", len(cores_by_size[size]), size)

        if skipped_ids:
            logger.warning(
                "Skipped %s matches with more than %s participants during core detection: %s",
                len(skipped_ids),
                self.params.max_core_roster,
                sorted(skipped_ids),
            )
        return CoreDetectionResult(
            cores_by_size=cores_by_size,
            skipped_match_ids=tuple(sorted(skipped_ids)),
        )

    def build_core(
        self,
        key: CoreKey,
        core_matches: Sequence[MatchRecord],
        players: dict[int, PlayerRef],
    ) -> DetectedCore:
        """Compute stability, guests, pairwise stats and ordering for one core."""
        members = set(key)
        exact_matches = 0
        guest_counts: Counter[int] = Counter()
        pair_tallies = {pair: _PairTally() for pair in permutations(key, 2)}
        placement_samples: dict[int, list[int]] = {player_id: [] for player_id in key}
        win_counts: Counter[int] = Counter()
        decided_counts: Counter[int] = Counter()

        for match in core_matches:
            if match.player_count == len(key):
                exact_matches += 1
            for participant in match.participants:
                if participant.player_id not in members:
                    guest_counts[participant.player_id] += 1

            if match.is_coop:
                continue

            slots = {
                participant.player_id: participant
                for participant in match.participants
                if participant.player_id in members
            }
            winners = match_winner_ids(match)
            if winners is not None:
                for player_id in key:
                    decided_counts[player_id] += 1
                    win_counts[player_id] += int(player_id in winners)
            if match.win_condition is not WinCondition.MANUAL:
                for player_id in key:
                    placement_samples[player_id].append(slots[player_id].placement)

            bucket = player_count_bucket(match.player_count)
            for (player_a_id, player_b_id), tally in pair_tallies.items():
                _accumulate_pair(
                    tally,
                    match,
                    winners,
                    slots[player_a_id],
                    slots[player_b_id],
                    bucket,
                )

        match_count = len(core_matches)
        pairwise_stats = tuple(
            self._build_pairwise_stat(players[player_a_id], players[player_b_id], tally)
            for (player_a_id, player_b_id), tally in pair_tallies.items()
        )
        group_ordering: tuple[GroupOrderingEntry, ...] = ()
        if len(key) >= 3:
            group_ordering = _build_group_ordering(
                [players[player_id] for player_id in key],
                placement_samples,
                win_counts,
                decided_counts,
            )

        guests = sorted(
            (
                GuestEntry(player=players[player_id], count=count)
                for player_id, count in guest_counts.items()
            ),
            key=lambda item: (-item.count, item.player.name, item.player.player_id),
        )
        return DetectedCore(
            key=key,
            players=tuple(players[player_id] for player_id in key),
            match_count=match_count,
            match_ids=tuple(match.match_id for match in core_matches),
            stability=exact_matches / match_count if match_count else 0.0,
            confidence=self.params.confidence(match_count),
            pairwise_stats=pairwise_stats,
            group_ordering=group_ordering,
            guests=tuple(guests[: self.params.guest_limit]),
        )

    def _build_pairwise_stat(
        self,
        player_a: PlayerRef,
        player_b: PlayerRef,
        tally: _PairTally,
    ) -> PairwiseStat:
        buckets = tuple(
            PlayerCountBucketStat(
                bucket=bucket,
                match_count=bucket_tally.total,
                finishes_above_rate=safe_rate(bucket_tally.above, bucket_tally.total),
                avg_placement_delta=safe_mean(bucket_tally.placement_deltas),
                avg_score_delta=safe_mean(bucket_tally.score_deltas),
            )
            for bucket, bucket_tally in sorted(
                tally.buckets.items(), key=lambda item: _bucket_sort_key(item[0])
            )
            if bucket_tally.total > 0
        )
        return PairwiseStat(
            player_a=player_a,
            player_b=player_b,
            match_count=tally.total,
            finishes_above_rate=safe_rate(tally.above, tally.total),
            avg_placement_delta=safe_mean(tally.placement_deltas),
            avg_score_delta=safe_mean(tally.score_deltas),
            confidence=self.params.confidence(tally.total),
            by_player_count=buckets,
        )


def _accumulate_pair(
    tally: _PairTally,
    match: MatchRecord,
    winners: frozenset[int] | None,
    player_a: MatchParticipant,
    player_b: MatchParticipant,
    bucket: str,
) -> None:
    bucket_tally = tally.buckets.setdefault(bucket, _ComparisonTally())

    if match.win_condition is WinCondition.MANUAL:
        if winners is None:
            return
        a_won = player_a.player_id in winners
        if a_won == (player_b.player_id in winners):
            return
        for target in (tally, bucket_tally):
            target.total += 1
            target.above += int(a_won)
    else:
        placement_delta = player_b.placement - player_a.placement
        for target in (tally, bucket_tally):
            target.total += 1
            target.above += int(player_a.placement < player_b.placement)
            target.placement_deltas.append(placement_delta)

    if player_a.score is None or player_b.score is None:
        return
    score_delta = player_a.score - player_b.score
    if match.win_condition is WinCondition.LOWEST_SCORE:
        score_delta = -score_delta
    tally.score_deltas.append(score_delta)
    bucket_tally.score_deltas.append(score_delta)


def _build_group_ordering(
    members: Sequence[PlayerRef],
    placement_samples: dict[int, list[int]],
    win_counts: Counter[int],
    decided_counts: Counter[int],
) -> tuple[GroupOrderingEntry, ...]:
    """Rank members by mean placement; ties by name, members without data last."""
    rows: list[tuple[PlayerRef, float | None, float | None]] = []
    for player in members:
        avg_placement = safe_mean(placement_samples[player.player_id])
        win_rate = safe_rate(win_counts[player.player_id], decided_counts[player.player_id])
        rows.append((player, avg_placement, win_rate))

    def ordering_key(row: tuple[PlayerRef, float | None, float | None]) -> tuple:
        player, avg_placement, win_rate = row
        if avg_placement is not None:
            return (0, avg_placement, player.name, player.player_id)
        # Without placement data fall back to win rate.
        return (1, -(win_rate if win_rate is not None else -1.0), player.name, player.player_id)

    rows.sort(key=ordering_key)
    return tuple(
        GroupOrderingEntry(
            player=player,
            rank=index,
            avg_placement=avg_placement,
            wins=win_counts[player.player_id],
            losses=decided_counts[player.player_id] - win_counts[player.player_id],
            win_rate=win_rate,
        )
        for index, (player, avg_placement, win_rate) in enumerate(rows, start=1)
    )


def detect_cores(
    matches: Iterable[MatchRecord],
    params: InsightsParameters | None = None,
) -> CoreDetectionResult:
    return GroupCoreDetector(params).detect(matches)


__all__ = [
    "CoreDetectionResult",
    "CoreKey",
    "DetectedCore",
    "GroupCoreDetector",
    "GroupOrderingEntry",
    "GuestEntry",
    "PairwiseStat",
    "PlayerCountBucketStat",
    "count_co_occurrences",
    "detect_cores",
    "full_roster",
    "player_count_bucket",
    "team_rosters",
]
