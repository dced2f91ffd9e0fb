"""Read finished matches for one game as immutable match snapshots."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from domain.insights.common import (
    MatchParticipant,
    MatchRecord,
    PlayerRef,
    RoleRef,
    TeamRef,
    WinCondition,
)

_metadata = MetaData()

_players = Table(
    "players",
    _metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String, nullable=False),
    Column("is_user", Boolean, nullable=False, default=False),
    Column("is_guest", Boolean, nullable=False, default=False),
    Column("image_url", String),
)

_matches = Table(
    "matches",
    _metadata,
    Column("id", Integer, primary_key=True),
    Column("game_id", Integer, nullable=False, index=True),
    Column("date", DateTime(timezone=False)),
    Column("duration", Integer, nullable=False, default=0),
    Column("finished", Boolean, nullable=False, default=False),
    Column("win_condition", String, nullable=False, default=WinCondition.HIGHEST_SCORE.value),
    Column("is_coop", Boolean, nullable=False, default=False),
    Column("location_id", Integer),
)

_teams = Table(
    "teams",
    _metadata,
    Column("id", Integer, primary_key=True),
    Column("match_id", Integer, ForeignKey("matches.id"), nullable=False),
    Column("name", String, nullable=False),
)

_match_players = Table(
    "match_players",
    _metadata,
    Column("id", Integer, primary_key=True),
    Column("match_id", Integer, ForeignKey("matches.id"), nullable=False, index=True),
    Column("player_id", Integer, ForeignKey("players.id"), nullable=False),
    Column("team_id", Integer, ForeignKey("teams.id")),
    Column("placement", Integer),
    Column("score", Float),
    Column("winner", Boolean),
)

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String, nullable=False),
    Column("description", String),
)

_match_player_roles = Table(
    "match_player_roles",
    _metadata,
    Column("match_player_id", Integer, ForeignKey("match_players.id"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id"), primary_key=True),
)


def ensure_match_source_schema(engine: Engine) -> None:
    """Create the match source tables if they do not exist."""
    _metadata.create_all(engine)


def _build_cutoff_time(lookback_days: int | None) -> datetime | None:
    if lookback_days is None or lookback_days <= 0:
        return None
    return datetime.now(UTC).replace(tzinfo=None) - timedelta(days=lookback_days)


def _match_conditions(game_id: int, cutoff_time: datetime | None) -> list[Any]:
    conditions: list[Any] = [
        _matches.c.game_id == game_id,
        _matches.c.finished.is_(True),
    ]
    if cutoff_time is not None:
        conditions.append(_matches.c.date >= cutoff_time)
    return conditions


def _optional_int(value: object) -> int | None:
    if value is None:
        return None
    return int(value)


def _optional_float(value: object) -> float | None:
    if value is None:
        return None
    return float(value)


def _optional_bool(value: object) -> bool | None:
    if value is None:
        return None
    return bool(value)


def _fetch_roles_by_slot(
    session: Session,
    game_id: int,
    cutoff_time: datetime | None,
) -> dict[int, list[RoleRef]]:
    statement = (
        select(
            _match_player_roles.c.match_player_id,
            _roles.c.id.label("role_id"),
            _roles.c.name.label("role_name"),
            _roles.c.description.label("role_description"),
        )
        .select_from(
            _match_player_roles.join(_roles, _roles.c.id == _match_player_roles.c.role_id)
            .join(_match_players, _match_players.c.id == _match_player_roles.c.match_player_id)
            .join(_matches, _matches.c.id == _match_players.c.match_id)
        )
        .where(*_match_conditions(game_id, cutoff_time))
        .order_by(_match_player_roles.c.match_player_id, _roles.c.id)
    )

    roles_by_slot: dict[int, list[RoleRef]] = {}
    for row in session.execute(statement).mappings().all():
        roles_by_slot.setdefault(int(row["match_player_id"]), []).append(
            RoleRef(
                role_id=int(row["role_id"]),
                name=row["role_name"],
                description=row["role_description"],
            )
        )
    return roles_by_slot


def fetch_game_matches(
    session: Session,
    game_id: int,
    lookback_days: int | None = None,
) -> list[MatchRecord]:
    """Fetch one game's finished matches in (date, match id) order.

    Cooperative outcomes come from the participants' winner flags; a cooperative
    match where no flag is recorded has an undetermined outcome. Manual sheets
    without a usable placement rank flagged winners 1 and everyone else 2.
    """
    cutoff_time = _build_cutoff_time(lookback_days)
    roles_by_slot = _fetch_roles_by_slot(session, game_id, cutoff_time)

    statement = (
        select(
            _matches.c.id.label("match_id"),
            _matches.c.date.label("match_date"),
            _matches.c.duration,
            _matches.c.win_condition,
            _matches.c.is_coop,
            _matches.c.location_id,
            _match_players.c.id.label("match_player_id"),
            _match_players.c.player_id,
            _match_players.c.team_id,
            _match_players.c.placement,
            _match_players.c.score,
            _match_players.c.winner,
            _players.c.name.label("player_name"),
            _players.c.is_user,
            _players.c.is_guest,
            _players.c.image_url,
            _teams.c.name.label("team_name"),
        )
        .select_from(
            _matches.join(_match_players, _match_players.c.match_id == _matches.c.id)
            .join(_players, _players.c.id == _match_players.c.player_id)
            .outerjoin(_teams, _teams.c.id == _match_players.c.team_id)
        )
        .where(*_match_conditions(game_id, cutoff_time))
        .order_by(_matches.c.date, _matches.c.id, _match_players.c.id)
    )

    rows = session.execute(statement).mappings().all()

    grouped: dict[int, dict[str, Any]] = {}
    ordered_match_ids: list[int] = []

    for row in rows:
        match_id = int(row["match_id"])
        payload = grouped.get(match_id)
        if payload is None:
            match_date = row["match_date"]
            if not isinstance(match_date, datetime):
                raise ValueError(f"match_id={match_id} has invalid match_date={match_date!r}")
            payload = {
                "match_id": match_id,
                "match_date": match_date,
                "duration_seconds": int(row["duration"] or 0),
                "win_condition": WinCondition(row["win_condition"]),
                "is_coop": bool(row["is_coop"]),
                "location_id": _optional_int(row["location_id"]),
                "participants": [],
                "teams": {},
            }
            grouped[match_id] = payload
            ordered_match_ids.append(match_id)

        team_id = _optional_int(row["team_id"])
        if team_id is not None and row["team_name"] is not None:
            payload["teams"].setdefault(team_id, TeamRef(team_id=team_id, name=row["team_name"]))

        placement = _optional_int(row["placement"])
        winner = _optional_bool(row["winner"])
        manual = payload["win_condition"] is WinCondition.MANUAL
        if manual and (placement is None or placement <= 0):
            # Manual sheets store only the winner flag.
            placement = 1 if winner else 2
        elif placement is None:
            if not payload["is_coop"]:
                raise ValueError(
                    f"match_id={match_id} player_id={row['player_id']} has no placement"
                )
            placement = 1

        payload["participants"].append(
            MatchParticipant(
                player=PlayerRef(
                    player_id=int(row["player_id"]),
                    name=row["player_name"],
                    is_user=bool(row["is_user"]),
                    is_guest=bool(row["is_guest"]),
                    image_url=row["image_url"],
                ),
                placement=placement,
                score=_optional_float(row["score"]),
                team_id=team_id,
                roles=tuple(roles_by_slot.get(int(row["match_player_id"]), ())),
                winner=winner,
            )
        )

    matches: list[MatchRecord] = []
    for match_id in ordered_match_ids:
        payload = grouped[match_id]
        participants = tuple(payload["participants"])
        coop_won = None
        if payload["is_coop"]:
            flags = [
                participant.winner for participant in participants if participant.winner is not None
            ]
            coop_won = any(flags) if flags else None
        matches.append(
            MatchRecord(
                match_id=match_id,
                match_date=payload["match_date"],
                participants=participants,
                duration_seconds=payload["duration_seconds"],
                finished=True,
                win_condition=payload["win_condition"],
                is_coop=payload["is_coop"],
                coop_won=coop_won,
                location_id=payload["location_id"],
                teams=tuple(payload["teams"][team_id] for team_id in sorted(payload["teams"])),
            )
        )

    return matches


__all__ = ["ensure_match_source_schema", "fetch_game_matches"]
