"""Unit tests for recurring player cores and their comparative statistics."""

from __future__ import annotations

from datetime import datetime, timedelta
from itertools import combinations
import logging

import pytest

from domain.insights.common import MatchParticipant, MatchRecord, PlayerRef, WinCondition
from domain.insights.cores import (
    GroupCoreDetector,
    count_co_occurrences,
    detect_cores,
    player_count_bucket,
    team_rosters,
)
from domain.insights.parameters import ConfidenceTier, InsightsParameters

BASE_DATE = datetime(2026, 1, 1, 12, 0, 0)
NAMES = {1: "A", 2: "B", 3: "C"}


def _match(
    match_id: int,
    placements: dict[int, int],
    *,
    scores: dict[int, float] | None = None,
    winners: set[int] | None = None,
    teams: dict[int, int] | None = None,
    names: dict[int, str] | None = None,
    **kwargs,
) -> MatchRecord:
    names = names or NAMES
    return MatchRecord(
        match_id=match_id,
        match_date=BASE_DATE + timedelta(days=match_id),
        participants=tuple(
            MatchParticipant(
                player=PlayerRef(player_id=player_id, name=names.get(player_id, f"P{player_id}")),
                placement=placement,
                score=None if scores is None else scores.get(player_id),
                winner=None if winners is None else player_id in winners,
                team_id=None if teams is None else teams.get(player_id),
            )
            for player_id, placement in placements.items()
        ),
        **kwargs,
    )


def _three_player_history() -> list[MatchRecord]:
    return [
        _match(1, {1: 1, 2: 2, 3: 3}),
        _match(2, {1: 1, 2: 2, 3: 3}),
        _match(3, {1: 2, 2: 1, 3: 3}),
        _match(4, {1: 1, 2: 2, 3: 3}),
    ]


def test_three_player_history_pair_and_trio() -> None:
    result = detect_cores(_three_player_history())

    pair = result.find([1, 2])
    assert pair is not None
    assert pair.match_count == 4
    assert pair.match_ids == (1, 2, 3, 4)
    assert pair.stability == pytest.approx(0.0)
    assert pair.confidence is ConfidenceTier.LOW
    assert pair.group_ordering == ()

    a_over_b = pair.pair(1, 2)
    assert a_over_b is not None
    assert a_over_b.match_count == 4
    assert a_over_b.finishes_above_rate == pytest.approx(0.75)
    assert a_over_b.avg_placement_delta == pytest.approx(0.5)
    b_over_a = pair.pair(2, 1)
    assert b_over_a is not None
    assert b_over_a.finishes_above_rate == pytest.approx(0.25)
    assert b_over_a.avg_placement_delta == pytest.approx(-0.5)

    trio = result.find([3, 1, 2])
    assert trio is not None
    assert trio.stability == pytest.approx(1.0)
    assert trio.guests == ()
    ordering = [
        (entry.player.name, entry.rank, entry.avg_placement) for entry in trio.group_ordering
    ]
    assert ordering == [
        ("A", 1, pytest.approx(1.25)),
        ("B", 2, pytest.approx(1.75)),
        ("C", 3, pytest.approx(3.0)),
    ]
    assert trio.group_ordering[0].wins == 3
    assert trio.group_ordering[0].losses == 1

    assert len(result.cores(2)) == 3
    assert result.cores(4) == ()


def test_group_ordering_breaks_average_ties_by_name() -> None:
    names = {1: "Zed", 2: "Amy", 3: "Cal"}
    matches = [
        _match(1, {1: 1, 2: 2, 3: 3}, names=names),
        _match(2, {1: 1, 2: 2, 3: 3}, names=names),
        _match(3, {1: 2, 2: 1, 3: 3}, names=names),
        _match(4, {1: 2, 2: 1, 3: 3}, names=names),
    ]

    trio = detect_cores(matches).find([1, 2, 3])

    assert trio is not None
    assert [entry.player.name for entry in trio.group_ordering] == ["Amy", "Zed", "Cal"]
    assert [entry.rank for entry in trio.group_ordering] == [1, 2, 3]


def test_core_monotonicity() -> None:
    rosters = (
        [[1, 2, 3, 4]] * 3
        + [[1, 2, 3]] * 2
        + [[1, 2]]
        + [[2, 3, 4]] * 2
        + [[1, 3, 4, 5]] * 3
        + [[4, 5]] * 2
    )
    matches = [
        _match(index, {player_id: place for place, player_id in enumerate(roster, start=1)})
        for index, roster in enumerate(rosters, start=1)
    ]

    result = detect_cores(matches)

    assert result.cores(4)
    for size in (3, 4):
        for core in result.cores(size):
            for subset in combinations(core.key, size - 1):
                smaller = result.find(subset)
                assert smaller is not None
                assert smaller.match_count >= core.match_count


def test_guests_and_stability() -> None:
    matches = [
        _match(1, {1: 1, 2: 2}),
        _match(2, {1: 2, 2: 1}),
        _match(3, {1: 1, 2: 2, 3: 3}),
        _match(4, {1: 1, 2: 2, 3: 3, 4: 4}),
    ]

    core = detect_cores(matches).find([1, 2])
    capped = detect_cores(matches, InsightsParameters(guest_limit=1)).find([1, 2])

    assert core is not None
    assert core.match_count == 4
    assert core.stability == pytest.approx(0.5)
    assert [(guest.player.player_id, guest.count) for guest in core.guests] == [(3, 2), (4, 1)]
    assert capped is not None
    assert [guest.player.player_id for guest in capped.guests] == [3]


def test_cores_below_minimum_support_are_dropped() -> None:
    matches = [_match(1, {1: 1, 2: 2}), _match(2, {1: 1, 2: 2})]
    assert detect_cores(matches).cores(2) == ()
    assert detect_cores(matches, InsightsParameters(min_core_matches=2)).find([1, 2]) is not None


def test_coop_matches_count_toward_core_but_not_comparisons() -> None:
    matches = [
        _match(match_id, {1: 1, 2: 1}, is_coop=True, coop_won=True) for match_id in range(1, 4)
    ]

    core = detect_cores(matches).find([1, 2])

    assert core is not None
    assert core.match_count == 3
    stat = core.pair(1, 2)
    assert stat is not None
    assert stat.match_count == 0
    assert stat.finishes_above_rate is None
    assert stat.avg_placement_delta is None
    assert stat.by_player_count == ()


def test_manual_sheets_compare_winner_flags_only() -> None:
    manual = WinCondition.MANUAL
    matches = [
        _match(1, {1: 1, 2: 2, 3: 3}, winners={1}, win_condition=manual),
        _match(2, {1: 2, 2: 1, 3: 3}, winners={2}, win_condition=manual),
        _match(3, {1: 2, 2: 3, 3: 1}, winners={3}, win_condition=manual),
    ]

    result = detect_cores(matches)
    pair = result.find([1, 2])
    trio = result.find([1, 2, 3])

    assert pair is not None
    stat = pair.pair(1, 2)
    assert stat is not None
    assert stat.match_count == 2
    assert stat.finishes_above_rate == pytest.approx(0.5)
    assert stat.avg_placement_delta is None

    assert trio is not None
    assert [entry.player.player_id for entry in trio.group_ordering] == [1, 2, 3]
    assert all(entry.avg_placement is None for entry in trio.group_ordering)
    assert all(entry.win_rate == pytest.approx(1 / 3) for entry in trio.group_ordering)


def test_score_delta_is_positive_when_first_player_did_better() -> None:
    lowest = [
        _match(
            match_id,
            {1: 1, 2: 2},
            scores={1: 10.0, 2: 20.0},
            win_condition=WinCondition.LOWEST_SCORE,
        )
        for match_id in range(1, 4)
    ]
    highest = [
        _match(match_id, {1: 1, 2: 2}, scores={1: 30.0, 2: 20.0}) for match_id in range(1, 4)
    ]

    low_stat = detect_cores(lowest).find([1, 2]).pair(1, 2)
    high_stat = detect_cores(highest).find([1, 2]).pair(1, 2)

    assert low_stat is not None
    assert low_stat.avg_score_delta == pytest.approx(10.0)
    assert high_stat is not None
    assert high_stat.avg_score_delta == pytest.approx(10.0)


def test_pairwise_stats_split_by_player_count_bucket() -> None:
    matches = [
        _match(1, {1: 1, 2: 2}),
        _match(2, {1: 2, 2: 1}),
        _match(3, {1: 1, 2: 2, 3: 3, 4: 4, 5: 5}),
    ]

    stat = detect_cores(matches).find([1, 2]).pair(1, 2)

    assert stat is not None
    assert [(bucket.bucket, bucket.match_count) for bucket in stat.by_player_count] == [
        ("2p", 2),
        ("5-6p", 1),
    ]
    assert stat.by_player_count[0].finishes_above_rate == pytest.approx(0.5)
    assert stat.by_player_count[1].finishes_above_rate == pytest.approx(1.0)


def test_oversized_rosters_are_skipped_and_logged(caplog: pytest.LogCaptureFixture) -> None:
    crowd = {player_id: player_id for player_id in range(1, 21)}
    matches = [_match(match_id, crowd) for match_id in range(1, 4)]
    matches += [_match(match_id, {1: 1, 2: 2}) for match_id in range(4, 7)]

    with caplog.at_level(logging.WARNING, logger="domain.insights.cores"):
        result = detect_cores(matches)

    assert result.skipped_match_ids == (1, 2, 3)
    core = result.find([1, 2])
    assert core is not None
    assert core.match_ids == (4, 5, 6)
    assert "Skipped 3 matches" in caplog.text


def test_max_cores_per_size_keeps_best_supported() -> None:
    matches = [_match(match_id, {1: 1, 2: 2}) for match_id in range(1, 5)]
    matches += [_match(match_id, {3: 1, 4: 2}) for match_id in range(5, 8)]

    result = GroupCoreDetector(InsightsParameters(max_cores_per_size=1)).detect(matches)

    assert [core.key for core in result.cores(2)] == [(1, 2)]


def test_team_rosters_count_only_teammates() -> None:
    match = _match(1, {1: 1, 2: 1, 3: 2, 4: 2}, teams={1: 10, 2: 10, 3: 20, 4: 20})

    occurrences, skipped = count_co_occurrences([match], 2, max_roster=16, groups=team_rosters)

    assert occurrences == {(1, 2): [1], (3, 4): [1]}
    assert skipped == []


def test_confidence_tiers_and_buckets() -> None:
    params = InsightsParameters()
    assert params.confidence(4) is ConfidenceTier.LOW
    assert params.confidence(5) is ConfidenceTier.MEDIUM
    assert params.confidence(15) is ConfidenceTier.MEDIUM
    assert params.confidence(16) is ConfidenceTier.HIGH
    assert [player_count_bucket(count) for count in (2, 3, 4, 5, 6, 7, 12)] == [
        "2p",
        "3p",
        "4p",
        "5-6p",
        "5-6p",
        "7+p",
        "7+p",
    ]


def test_empty_history_has_no_cores() -> None:
    result = detect_cores([])
    assert all(result.cores(size) == () for size in (2, 3, 4))
    assert result.skipped_match_ids == ()
