"""Shared match snapshot types consumed by every insight component."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class WinCondition(str, Enum):
    """How a scoresheet decides its winner."""

    HIGHEST_SCORE = "Highest Score"
    LOWEST_SCORE = "Lowest Score"
    MANUAL = "Manual"
    TARGET_SCORE = "Target Score"
    NONE = "None"


class MatchValidationError(ValueError):
    """Raised when a match snapshot violates the source contract."""

    def __init__(self, match_id: int, message: str) -> None:
        super().__init__(f"match_id={match_id} {message}")
        self.match_id = match_id


@dataclass(frozen=True)
class PlayerRef:
    """Stable player identity as seen by the statistics engine."""

    player_id: int
    name: str
    is_user: bool = False
    is_guest: bool = False
    image_url: str | None = None


@dataclass(frozen=True)
class RoleRef:
    role_id: int
    name: str
    description: str | None = None


@dataclass(frozen=True)
class TeamRef:
    team_id: int
    name: str


@dataclass(frozen=True)
class MatchParticipant:
    """One player slot inside a finished match."""

    player: PlayerRef
    placement: int
    score: float | None = None
    team_id: int | None = None
    roles: tuple[RoleRef, ...] = ()
    winner: bool | None = None

    @property
    def player_id(self) -> int:
        return self.player.player_id

    @property
    def role_ids(self) -> frozenset[int]:
        return frozenset(role.role_id for role in self.roles)


@dataclass(frozen=True)
class MatchRecord:
    """Immutable match snapshot supplied by the match record source."""

    match_id: int
    match_date: datetime
    participants: tuple[MatchParticipant, ...]
    duration_seconds: int = 0
    finished: bool = True
    win_condition: WinCondition = WinCondition.HIGHEST_SCORE
    is_coop: bool = False
    coop_won: bool | None = None
    location_id: int | None = None
    teams: tuple[TeamRef, ...] = ()

    @property
    def player_count(self) -> int:
        return len(self.participants)

    @property
    def player_ids(self) -> tuple[int, ...]:
        """Sorted participant identities (canonical roster key)."""
        return tuple(sorted(participant.player_id for participant in self.participants))

    @property
    def has_teams(self) -> bool:
        return any(participant.team_id is not None for participant in self.participants)

    def participant(self, player_id: int) -> MatchParticipant | None:
        for participant in self.participants:
            if participant.player_id == player_id:
                return participant
        return None

    def team_name(self, team_id: int) -> str | None:
        for team in self.teams:
            if team.team_id == team_id:
                return team.name
        return None


def match_winner_ids(match: MatchRecord) -> frozenset[int] | None:
    """Return winning player ids, or None when the outcome cannot be determined.

    Competitive matches are won by every participant sharing the best (lowest)
    placement. Manual sheets rely on the recorded winner flags. Cooperative
    matches are won or lost by the whole table.
    """
    if not match.finished or not match.participants:
        return None

    if match.is_coop:
        if match.coop_won is None:
            return None
        if match.coop_won:
            return frozenset(participant.player_id for participant in match.participants)
        return frozenset()

    if match.win_condition is WinCondition.MANUAL:
        winners = frozenset(
            participant.player_id for participant in match.participants if participant.winner
        )
        return winners or None

    best_placement = min(participant.placement for participant in match.participants)
    return frozenset(
        participant.player_id
        for participant in match.participants
        if participant.placement == best_placement
    )


def team_won(match: MatchRecord, team_id: int, winners: frozenset[int]) -> bool:
    """A team wins when any of its members is among the match winners."""
    return any(
        participant.team_id == team_id and participant.player_id in winners
        for participant in match.participants
    )


def sort_matches(matches: Iterable[MatchRecord]) -> list[MatchRecord]:
    """Deterministic chronological order."""
    return sorted(matches, key=lambda match: (match.match_date, match.match_id))


def collect_players(matches: Iterable[MatchRecord]) -> dict[int, PlayerRef]:
    """First-seen player reference per identity."""
    players: dict[int, PlayerRef] = {}
    for match in matches:
        for participant in match.participants:
            players.setdefault(participant.player_id, participant.player)
    return players


def validate_matches(matches: Sequence[MatchRecord]) -> None:
    """Reject snapshots that would produce misleading statistics."""
    for match in matches:
        _validate_match(match)


def _validate_match(match: MatchRecord) -> None:
    seen_players: set[int] = set()
    known_team_ids = {team.team_id for team in match.teams}
    team_placements: dict[int, int] = {}

    for participant in match.participants:
        if participant.placement <= 0:
            raise MatchValidationError(
                match.match_id,
                f"has invalid placement={participant.placement} "
                f"for player_id={participant.player_id}",
            )
        if participant.player_id in seen_players:
            raise MatchValidationError(
                match.match_id,
                f"lists player_id={participant.player_id} more than once",
            )
        seen_players.add(participant.player_id)

        if participant.team_id is None:
            continue
        if known_team_ids and participant.team_id not in known_team_ids:
            raise MatchValidationError(
                match.match_id,
                f"references unknown team_id={participant.team_id} "
                f"for player_id={participant.player_id}",
            )
        expected = team_placements.setdefault(participant.team_id, participant.placement)
        if expected != participant.placement:
            raise MatchValidationError(
                match.match_id,
                f"has team_id={participant.team_id} members with different placements "
                f"({expected} and {participant.placement})",
            )

    if match.win_condition is WinCondition.MANUAL and not match.is_coop:
        flags_by_placement: dict[int, bool] = {}
        for participant in match.participants:
            if participant.winner is None:
                continue
            previous = flags_by_placement.setdefault(participant.placement, participant.winner)
            if previous != participant.winner:
                raise MatchValidationError(
                    match.match_id,
                    f"has placement={participant.placement} shared by a winner and a non-winner",
                )


__all__ = [
    "MatchParticipant",
    "MatchRecord",
    "MatchValidationError",
    "PlayerRef",
    "RoleRef",
    "TeamRef",
    "WinCondition",
    "collect_players",
    "match_winner_ids",
    "sort_matches",
    "team_won",
    "validate_matches",
]
