"""Tests for reading match snapshots from the relational match source."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session, sessionmaker

from db import create_db_engine, create_session_factory
from domain.insights.common import WinCondition
from domain.insights.engine import compute_game_insights
from repositories.match_source import ensure_match_source_schema, fetch_game_matches

INSERT_PLAYER = text(
    "INSERT INTO players (id, name, is_user, is_guest, image_url) "
    "VALUES (:id, :name, :is_user, :is_guest, NULL)"
)
INSERT_MATCH = text(
    "INSERT INTO matches (id, game_id, date, duration, finished, win_condition, is_coop) "
    "VALUES (:id, :game_id, :date, :duration, :finished, :win_condition, :is_coop)"
)
INSERT_TEAM = text("INSERT INTO teams (id, match_id, name) VALUES (:id, :match_id, :name)")
INSERT_SLOT = text(
    "INSERT INTO match_players (id, match_id, player_id, team_id, placement, score, winner) "
    "VALUES (:id, :match_id, :player_id, :team_id, :placement, :score, :winner)"
)
INSERT_ROLE = text("INSERT INTO roles (id, name, description) VALUES (:id, :name, :description)")
INSERT_SLOT_ROLE = text(
    "INSERT INTO match_player_roles (match_player_id, role_id) VALUES (:slot_id, :role_id)"
)


def _session_factory(tmp_path: Path) -> sessionmaker[Session]:
    engine = create_db_engine(f"sqlite:///{tmp_path / 'matches.db'}")
    ensure_match_source_schema(engine)
    return create_session_factory(engine)


def _stamp(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S.%f")


def _match_row(
    match_id: int,
    date: datetime,
    *,
    game_id: int = 100,
    finished: int = 1,
    is_coop: int = 0,
    win_condition: str = WinCondition.HIGHEST_SCORE.value,
) -> dict[str, object]:
    return {
        "id": match_id,
        "game_id": game_id,
        "date": _stamp(date),
        "duration": 1800,
        "finished": finished,
        "win_condition": win_condition,
        "is_coop": is_coop,
    }


def _slot_row(
    slot_id: int,
    match_id: int,
    player_id: int,
    placement: int | None,
    *,
    team_id: int | None = None,
    score: float | None = None,
    winner: int | None = None,
) -> dict[str, object]:
    return {
        "id": slot_id,
        "match_id": match_id,
        "player_id": player_id,
        "team_id": team_id,
        "placement": placement,
        "score": score,
        "winner": winner,
    }


def _seed_game_history(session_factory: sessionmaker[Session]) -> None:
    with session_factory.begin() as session:
        session.execute(
            INSERT_PLAYER,
            [
                {"id": 1, "name": "Ann", "is_user": 1, "is_guest": 0},
                {"id": 2, "name": "Bob", "is_user": 0, "is_guest": 0},
                {"id": 3, "name": "Cat", "is_user": 0, "is_guest": 1},
            ],
        )
        session.execute(
            INSERT_MATCH,
            [
                _match_row(1, datetime(2026, 1, 2, 20, 0, 0)),
                _match_row(2, datetime(2026, 1, 1, 20, 0, 0), is_coop=1),
                _match_row(3, datetime(2026, 1, 3, 20, 0, 0), finished=0),
                _match_row(4, datetime(2026, 1, 3, 21, 0, 0), game_id=200),
                _match_row(5, datetime(2026, 1, 4, 20, 0, 0)),
                _match_row(6, datetime(2026, 1, 5, 20, 0, 0), is_coop=1),
            ],
        )
        session.execute(
            INSERT_TEAM,
            [
                {"id": 20, "match_id": 5, "name": "Blue"},
                {"id": 10, "match_id": 5, "name": "Red"},
            ],
        )
        session.execute(
            INSERT_SLOT,
            [
                _slot_row(1, 1, 1, 1, score=30.0),
                _slot_row(2, 1, 2, 2, score=20.0),
                _slot_row(3, 2, 1, None, winner=1),
                _slot_row(4, 2, 3, None, winner=1),
                _slot_row(5, 3, 1, 1),
                _slot_row(6, 4, 1, 1),
                _slot_row(7, 5, 1, 1, team_id=10),
                _slot_row(8, 5, 2, 2, team_id=20),
                _slot_row(9, 5, 3, 1, team_id=10),
                _slot_row(10, 6, 1, None),
                _slot_row(11, 6, 2, None),
            ],
        )
        session.execute(
            INSERT_ROLE,
            [
                {"id": 6, "name": "Builder", "description": None},
                {"id": 5, "name": "Merchant", "description": "Trades goods"},
            ],
        )
        session.execute(
            INSERT_SLOT_ROLE,
            [
                {"slot_id": 1, "role_id": 6},
                {"slot_id": 1, "role_id": 5},
                {"slot_id": 7, "role_id": 5},
            ],
        )


def test_fetch_game_matches_returns_finished_matches_in_date_order(tmp_path: Path) -> None:
    session_factory = _session_factory(tmp_path)
    _seed_game_history(session_factory)

    with session_factory() as session:
        matches = fetch_game_matches(session, 100)

    assert [match.match_id for match in matches] == [2, 1, 5, 6]
    assert all(match.finished for match in matches)

    competitive = matches[1]
    assert competitive.match_date == datetime(2026, 1, 2, 20, 0, 0)
    assert competitive.duration_seconds == 1800
    assert competitive.win_condition is WinCondition.HIGHEST_SCORE
    assert competitive.is_coop is False
    assert competitive.coop_won is None
    ann, bob = competitive.participants
    assert ann.player.name == "Ann"
    assert ann.player.is_user is True
    assert ann.score == pytest.approx(30.0)
    assert ann.winner is None
    assert [role.name for role in ann.roles] == ["Merchant", "Builder"]
    assert ann.roles[0].description == "Trades goods"
    assert bob.placement == 2
    assert bob.roles == ()


def test_coop_outcome_comes_from_winner_flags(tmp_path: Path) -> None:
    session_factory = _session_factory(tmp_path)
    _seed_game_history(session_factory)

    with session_factory() as session:
        matches = {match.match_id: match for match in fetch_game_matches(session, 100)}

    won = matches[2]
    assert won.is_coop is True
    assert won.coop_won is True
    assert [participant.placement for participant in won.participants] == [1, 1]
    assert won.participants[1].player.is_guest is True

    unrecorded = matches[6]
    assert unrecorded.coop_won is None


def test_team_rows_become_team_refs(tmp_path: Path) -> None:
    session_factory = _session_factory(tmp_path)
    _seed_game_history(session_factory)

    with session_factory() as session:
        matches = fetch_game_matches(session, 100)
    team_match = next(match for match in matches if match.match_id == 5)

    assert [(team.team_id, team.name) for team in team_match.teams] == [(10, "Red"), (20, "Blue")]
    assert [participant.team_id for participant in team_match.participants] == [10, 20, 10]
    assert team_match.has_teams is True
    assert [role.role_id for role in team_match.participants[0].roles] == [5]


def test_unknown_game_returns_no_matches(tmp_path: Path) -> None:
    session_factory = _session_factory(tmp_path)
    _seed_game_history(session_factory)

    with session_factory() as session:
        assert fetch_game_matches(session, 999) == []


def test_lookback_days_filters_older_matches(tmp_path: Path) -> None:
    session_factory = _session_factory(tmp_path)
    now = datetime.now(UTC).replace(tzinfo=None)
    with session_factory.begin() as session:
        session.execute(INSERT_PLAYER, [{"id": 1, "name": "Ann", "is_user": 1, "is_guest": 0}])
        session.execute(
            INSERT_MATCH,
            [
                _match_row(1, now - timedelta(days=100)),
                _match_row(2, now - timedelta(days=10)),
            ],
        )
        session.execute(INSERT_SLOT, [_slot_row(1, 1, 1, 1), _slot_row(2, 2, 1, 1)])

    with session_factory() as session:
        recent = fetch_game_matches(session, 100, lookback_days=30)
        everything = fetch_game_matches(session, 100)

    assert [match.match_id for match in recent] == [2]
    assert [match.match_id for match in everything] == [1, 2]


def test_competitive_slot_without_placement_is_rejected(tmp_path: Path) -> None:
    session_factory = _session_factory(tmp_path)
    with session_factory.begin() as session:
        session.execute(INSERT_PLAYER, [{"id": 1, "name": "Ann", "is_user": 1, "is_guest": 0}])
        session.execute(INSERT_MATCH, [_match_row(1, datetime(2026, 1, 1, 20, 0, 0))])
        session.execute(INSERT_SLOT, [_slot_row(1, 1, 1, None)])

    with session_factory() as session:
        with pytest.raises(ValueError, match="match_id=1 player_id=1 has no placement"):
            fetch_game_matches(session, 100)


@pytest.mark.parametrize("loser_placement", [None, 0])
def test_manual_slot_placement_comes_from_winner_flag(
    tmp_path: Path, loser_placement: int | None
) -> None:
    session_factory = _session_factory(tmp_path)
    with session_factory.begin() as session:
        session.execute(
            INSERT_PLAYER,
            [
                {"id": 1, "name": "Ann", "is_user": 1, "is_guest": 0},
                {"id": 2, "name": "Bob", "is_user": 0, "is_guest": 0},
                {"id": 3, "name": "Cat", "is_user": 0, "is_guest": 0},
            ],
        )
        session.execute(
            INSERT_MATCH,
            [
                _match_row(
                    1,
                    datetime(2026, 1, 1, 20, 0, 0),
                    win_condition=WinCondition.MANUAL.value,
                )
            ],
        )
        session.execute(
            INSERT_SLOT,
            [
                _slot_row(1, 1, 1, 1, winner=1),
                _slot_row(2, 1, 2, loser_placement, winner=0),
                _slot_row(3, 1, 3, None),
            ],
        )

    with session_factory() as session:
        matches = fetch_game_matches(session, 100)

    assert [participant.placement for participant in matches[0].participants] == [1, 2, 2]
    insights = compute_game_insights(matches)
    wins = {stats.player.player_id: stats.wins for stats in insights.player_stats}
    assert wins == {1: 1, 2: 0, 3: 0}
