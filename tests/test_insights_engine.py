"""Integration tests for the insight facade and its JSON payload."""

from __future__ import annotations

from datetime import datetime, timedelta
import threading
from typing import Any

import pytest

import domain.insights.engine as engine_module
from domain.insights.common import (
    MatchParticipant,
    MatchRecord,
    MatchValidationError,
    PlayerRef,
    TeamRef,
    match_winner_ids,
)
from domain.insights.engine import InsightsTimeoutError, compute_game_insights
from domain.insights.parameters import InsightsParameters
from domain.insights.reporting import dumps_payload, to_payload

BASE_DATE = datetime(2026, 1, 1, 12, 0, 0)
NAMES = {1: "Ann", 2: "Bob", 3: "Cat", 4: "Dan"}


def _match(
    match_id: int,
    placements: dict[int, int],
    *,
    teams: dict[int, int] | None = None,
    user_id: int = 1,
    **kwargs,
) -> MatchRecord:
    team_refs = ()
    if teams is not None:
        team_refs = tuple(
            TeamRef(team_id=team_id, name=f"Team {team_id}")
            for team_id in sorted(set(teams.values()))
        )
    return MatchRecord(
        match_id=match_id,
        match_date=BASE_DATE + timedelta(days=match_id),
        participants=tuple(
            MatchParticipant(
                player=PlayerRef(
                    player_id=player_id,
                    name=NAMES[player_id],
                    is_user=player_id == user_id,
                ),
                placement=placement,
                team_id=None if teams is None else teams.get(player_id),
            )
            for player_id, placement in placements.items()
        ),
        teams=team_refs,
        duration_seconds=1800,
        **kwargs,
    )


def _rival_history() -> list[MatchRecord]:
    return [
        _match(1, {2: 1, 1: 2, 3: 3}),
        _match(2, {2: 1, 3: 2, 1: 3}),
        _match(3, {2: 1, 1: 2, 3: 3}),
        _match(4, {3: 1, 2: 2, 1: 3}),
    ]


def _walk_rates(payload: Any, path: str = "") -> list[tuple[str, float]]:
    found: list[tuple[str, float]] = []
    if isinstance(payload, dict):
        for key, value in payload.items():
            child = f"{path}.{key}"
            if (key.endswith("rate") or key == "stability") and value is not None:
                found.append((child, value))
            else:
                found.extend(_walk_rates(value, child))
    elif isinstance(payload, list):
        for index, value in enumerate(payload):
            found.extend(_walk_rates(value, f"{path}[{index}]"))
    return found


def test_empty_history_yields_empty_sections() -> None:
    insights = compute_game_insights([])

    assert insights.matches_analyzed == 0
    assert insights.focus_player is None
    assert insights.summary.total_matches == 0
    assert insights.summary.most_common_player_count is None
    assert insights.summary.top_rival is None
    assert insights.player_stats == ()
    assert insights.head_to_head == ()
    assert insights.roles.roles == ()
    assert insights.lineups == ()
    assert insights.teams is None
    assert insights.distribution.game == ()


def test_focus_player_defaults_to_user() -> None:
    insights = compute_game_insights(_rival_history())

    assert insights.focus_player is not None
    assert insights.focus_player.player_id == 1
    assert [record.opponent.name for record in insights.head_to_head] == ["Bob", "Cat"]
    assert insights.head_to_head[0].losses == 4


def test_explicit_focus_player_overrides_user() -> None:
    insights = compute_game_insights(_rival_history(), focus_player_id=3)

    assert insights.focus_player is not None
    assert insights.focus_player.name == "Cat"
    assert insights.distribution.per_player[0].player.player_id == 3


def test_summary_highlights() -> None:
    summary = compute_game_insights(_rival_history()).summary

    assert summary.total_matches == 4
    assert summary.most_common_player_count is not None
    assert summary.most_common_player_count.player_count == 3
    assert summary.most_common_player_count.share == pytest.approx(1.0)
    assert summary.top_rival is not None
    assert summary.top_rival.player.name == "Bob"
    assert summary.top_rival.finishes_above_rate == pytest.approx(1.0)
    assert summary.top_rival.match_count == 4
    assert summary.top_trio is not None
    assert summary.top_trio.match_count == 4
    assert summary.top_group is not None
    assert [player.name for player in summary.top_group.players] == ["Ann", "Bob", "Cat"]
    assert summary.best_team_core is None


def test_best_team_core_uses_team_win_rate() -> None:
    teams = {1: 10, 2: 10, 3: 20, 4: 20}
    matches = [
        _match(1, {1: 1, 2: 1, 3: 2, 4: 2}, teams=teams),
        _match(2, {1: 1, 2: 1, 3: 2, 4: 2}, teams=teams),
        _match(3, {1: 2, 2: 2, 3: 1, 4: 1}, teams=teams),
        _match(4, {1: 1, 2: 1, 3: 2, 4: 2}, teams=teams),
    ]

    insights = compute_game_insights(matches)

    assert insights.teams is not None
    best = insights.summary.best_team_core
    assert best is not None
    assert [player.name for player in best.players] == ["Ann", "Bob"]
    assert best.win_rate == pytest.approx(0.75)
    assert best.match_count == 4


def test_repeated_runs_serialize_identically() -> None:
    matches = _rival_history()

    first = dumps_payload(compute_game_insights(matches))
    second = dumps_payload(compute_game_insights(list(reversed(matches))))

    assert first == second


def test_every_rate_is_bounded() -> None:
    payload = to_payload(compute_game_insights(_rival_history()))

    rates = _walk_rates(payload)

    assert rates
    for path, value in rates:
        assert 0.0 <= value <= 1.0, path


def test_tied_first_place_players_all_win() -> None:
    matches = [_match(1, {1: 1, 2: 1, 3: 2})]

    insights = compute_game_insights(matches)

    assert match_winner_ids(matches[0]) == frozenset({1, 2})
    wins = {stats.player.player_id: stats.wins for stats in insights.player_stats}
    assert wins == {1: 1, 2: 1, 3: 0}


def test_unfinished_matches_are_not_analyzed() -> None:
    matches = _rival_history() + [_match(9, {1: 1, 2: 2}, finished=False)]
    assert compute_game_insights(matches).matches_analyzed == 4


def test_invalid_snapshot_is_rejected() -> None:
    with pytest.raises(MatchValidationError, match="match_id=5"):
        compute_game_insights([_match(5, {1: 0, 2: 1})])


def test_section_failure_propagates(monkeypatch: pytest.MonkeyPatch) -> None:
    def _failing_roles(*args: Any, **kwargs: Any) -> Any:
        raise RuntimeError("role analysis failed")

    monkeypatch.setattr(engine_module, "analyze_roles", _failing_roles)

    with pytest.raises(RuntimeError, match="role analysis failed"):
        compute_game_insights(_rival_history())


def test_slow_section_raises_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    release = threading.Event()
    original = engine_module.detect_cores

    def _slow_cores(*args: Any, **kwargs: Any) -> Any:
        release.wait(5)
        return original(*args, **kwargs)

    monkeypatch.setattr(engine_module, "detect_cores", _slow_cores)

    try:
        with pytest.raises(InsightsTimeoutError, match="cores"):
            compute_game_insights(
                _rival_history(),
                InsightsParameters(timeout_seconds=0.05),
            )
    finally:
        release.set()
