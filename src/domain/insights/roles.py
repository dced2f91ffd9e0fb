"""Role classification, win rates and presence effects.

Classification is derived per call from the supplied matches: a role held by
at most one participant in a match is ``unique`` there, a role whose holders
all sit on one team is ``team``, anything else is ``shared``. The role's
overall classification is the predominant per-match label.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from domain.insights.common import (
    MatchParticipant,
    MatchRecord,
    PlayerRef,
    RoleRef,
    match_winner_ids,
    sort_matches,
)
from domain.insights.parameters import InsightsParameters, safe_mean, safe_rate

ROLE_EFFECT_LIMIT = 10


class RoleClassification(str, Enum):
    UNIQUE = "unique"
    TEAM = "team"
    SHARED = "shared"


class PresenceRelation(str, Enum):
    SELF = "self"
    SAME_TEAM = "same_team"
    OPPOSING_TEAM = "opposing_team"


@dataclass(frozen=True)
class PresenceEffect:
    """Win rate of players in one relation to a role, against their baseline.

    The baseline is the same players' win rate in matches where nobody held
    the role.
    """

    win_rate: float
    matches: int
    baseline_win_rate: float | None
    baseline_matches: int
    delta: float | None


@dataclass(frozen=True)
class RolePlayerBreakdown:
    player: PlayerRef
    matches: int
    wins: int
    win_rate: float | None
    avg_placement: float | None


@dataclass(frozen=True)
class PlayerPresenceEffect:
    player: PlayerRef
    self_effect: PresenceEffect | None
    same_team_effect: PresenceEffect | None
    opposing_team_effect: PresenceEffect | None


@dataclass(frozen=True)
class RelationRate:
    win_rate: float
    matches: int


@dataclass(frozen=True)
class RoleToRoleEffect:
    """Win rate of a role's holders by their relation to another role's holders.

    ``opposing_team`` covers every other holder not on the same team, so in a
    free-for-all match any other holder of the role is an opponent.
    """

    other_role: RoleRef
    same_player: RelationRate | None
    same_team: RelationRate | None
    opposing_team: RelationRate | None


@dataclass(frozen=True)
class RoleSummary:
    role: RoleRef
    classification: RoleClassification
    classification_breakdown: dict[str, int]
    match_count: int
    assignments: int
    wins: int
    win_rate: float | None
    player_count: int
    players: tuple[RolePlayerBreakdown, ...]
    self_effect: PresenceEffect | None
    same_team_effect: PresenceEffect | None
    opposing_team_effect: PresenceEffect | None
    player_effects: tuple[PlayerPresenceEffect, ...]
    role_effects: tuple[RoleToRoleEffect, ...] = ()


@dataclass(frozen=True)
class RoleCombo:
    role_ids: tuple[int, ...]
    roles: tuple[RoleRef, ...]
    match_count: int
    wins: int
    win_rate: float | None
    recommended: bool


@dataclass(frozen=True)
class PlayerRoleEntry:
    role: RoleRef
    classification: RoleClassification
    match_count: int
    wins: int
    win_rate: float | None
    avg_placement: float | None
    avg_score: float | None


@dataclass(frozen=True)
class PlayerRolePerformance:
    player: PlayerRef
    roles: tuple[PlayerRoleEntry, ...]

    @property
    def total_matches(self) -> int:
        return sum(entry.match_count for entry in self.roles)


@dataclass(frozen=True)
class RoleInsights:
    roles: tuple[RoleSummary, ...]
    combos: tuple[RoleCombo, ...]
    player_performance: tuple[PlayerRolePerformance, ...]


@dataclass
class _Tally:
    wins: int = 0
    matches: int = 0

    def add(self, won: bool) -> None:
        self.matches += 1
        self.wins += int(won)

    def merge(self, other: _Tally) -> None:
        self.wins += other.wins
        self.matches += other.matches


@dataclass
class _HolderState:
    player: PlayerRef
    matches: int = 0
    wins: int = 0
    decided: int = 0
    placements: list[int] = field(default_factory=list)
    scores: list[float] = field(default_factory=list)


def classify_role_in_match(match: MatchRecord, role_id: int) -> RoleClassification:
    holders = [participant for participant in match.participants if role_id in participant.role_ids]
    if len(holders) <= 1:
        return RoleClassification.UNIQUE
    first_team_id = holders[0].team_id
    if first_team_id is not None and all(holder.team_id == first_team_id for holder in holders):
        return RoleClassification.TEAM
    return RoleClassification.SHARED


def predominant_classification(breakdown: Counter[RoleClassification]) -> RoleClassification:
    unique = breakdown[RoleClassification.UNIQUE]
    team = breakdown[RoleClassification.TEAM]
    shared = breakdown[RoleClassification.SHARED]
    if team >= unique and team >= shared and team > 0:
        return RoleClassification.TEAM
    if shared >= unique and shared >= team and shared > 0:
        return RoleClassification.SHARED
    return RoleClassification.UNIQUE


def presence_relations(
    player: MatchParticipant,
    holders: Sequence[MatchParticipant],
) -> set[PresenceRelation]:
    """Relations of one participant to the holders of a role in the same match.

    A holder is only ``self``. Opposing requires both sides to be on teams.
    """
    relations: set[PresenceRelation] = set()
    for holder in holders:
        if holder.player_id == player.player_id:
            relations.add(PresenceRelation.SELF)
            continue
        if player.team_id is None or holder.team_id is None:
            continue
        if holder.team_id == player.team_id:
            relations.add(PresenceRelation.SAME_TEAM)
        else:
            relations.add(PresenceRelation.OPPOSING_TEAM)
    if PresenceRelation.SELF in relations:
        relations.discard(PresenceRelation.OPPOSING_TEAM)
    return relations


def analyze_roles(
    matches: Iterable[MatchRecord],
    params: InsightsParameters | None = None,
    *,
    target_player_id: int | None = None,
) -> RoleInsights:
    """Role summaries, combos and per-player role performance for one game.

    ``target_player_id`` restricts combos and performance to a single player.
    """
    params = params or InsightsParameters()
    ordered = [match for match in sort_matches(matches) if match.finished]
    roles = _collect_roles(ordered)
    if not roles:
        return RoleInsights(roles=(), combos=(), player_performance=())

    outcomes = {match.match_id: match_winner_ids(match) for match in ordered}
    summaries = [
        _summarize_role(role, roles, ordered, outcomes, params) for role in roles.values()
    ]
    summaries.sort(key=lambda item: (-item.match_count, item.role.name, item.role.role_id))
    classifications = {summary.role.role_id: summary.classification for summary in summaries}

    return RoleInsights(
        roles=tuple(summaries),
        combos=tuple(_role_combos(ordered, outcomes, roles, params, target_player_id)),
        player_performance=tuple(
            _player_role_performance(ordered, outcomes, classifications, target_player_id)
        ),
    )


def _collect_roles(matches: Sequence[MatchRecord]) -> dict[int, RoleRef]:
    roles: dict[int, RoleRef] = {}
    for match in matches:
        for participant in match.participants:
            for role in participant.roles:
                roles.setdefault(role.role_id, role)
    return roles


def _summarize_role(
    role: RoleRef,
    roles: dict[int, RoleRef],
    matches: Sequence[MatchRecord],
    outcomes: dict[int, frozenset[int] | None],
    params: InsightsParameters,
) -> RoleSummary:
    breakdown: Counter[RoleClassification] = Counter()
    holders_by_player: dict[int, _HolderState] = {}
    relation_tallies = {relation: _Tally() for relation in PresenceRelation}
    relation_players: dict[PresenceRelation, set[int]] = {
        relation: set() for relation in PresenceRelation
    }
    player_tallies: dict[int, dict[PresenceRelation, _Tally]] = {}
    absent_tallies: dict[int, _Tally] = {}
    players: dict[int, PlayerRef] = {}
    match_count = 0

    for match in matches:
        winners = outcomes[match.match_id]
        holders = [
            participant
            for participant in match.participants
            if role.role_id in participant.role_ids
        ]
        comparable = not match.is_coop and winners is not None

        if not holders:
            if comparable:
                for participant in match.participants:
                    absent_tallies.setdefault(participant.player_id, _Tally()).add(
                        participant.player_id in winners
                    )
            continue

        match_count += 1
        breakdown[classify_role_in_match(match, role.role_id)] += 1
        for holder in holders:
            state = holders_by_player.setdefault(holder.player_id, _HolderState(holder.player))
            state.matches += 1
            state.placements.append(holder.placement)
            if winners is not None:
                state.decided += 1
                state.wins += int(holder.player_id in winners)

        if not comparable:
            continue
        for participant in match.participants:
            won = participant.player_id in winners
            for relation in presence_relations(participant, holders):
                relation_tallies[relation].add(won)
                relation_players[relation].add(participant.player_id)
                per_player = player_tallies.setdefault(
                    participant.player_id, {item: _Tally() for item in PresenceRelation}
                )
                per_player[relation].add(won)
                players.setdefault(participant.player_id, participant.player)

    effects: dict[PresenceRelation, PresenceEffect | None] = {}
    for relation, tally in relation_tallies.items():
        baseline = _Tally()
        for player_id in sorted(relation_players[relation]):
            baseline.merge(absent_tallies.get(player_id, _Tally()))
        effects[relation] = _build_effect(tally, baseline, min_matches=1)

    player_effects: list[PlayerPresenceEffect] = []
    for player_id, tallies in player_tallies.items():
        baseline = absent_tallies.get(player_id, _Tally())
        built = {
            relation: _build_effect(
                tally, baseline, min_matches=params.presence_min_player_matches
            )
            for relation, tally in tallies.items()
        }
        if all(effect is None for effect in built.values()):
            continue
        player_effects.append(
            PlayerPresenceEffect(
                player=players[player_id],
                self_effect=built[PresenceRelation.SELF],
                same_team_effect=built[PresenceRelation.SAME_TEAM],
                opposing_team_effect=built[PresenceRelation.OPPOSING_TEAM],
            )
        )
    player_effects.sort(
        key=lambda item: (-_max_deviation(item), item.player.name, item.player.player_id)
    )

    breakdown_rows = [
        RolePlayerBreakdown(
            player=state.player,
            matches=state.matches,
            wins=state.wins,
            win_rate=safe_rate(state.wins, state.decided),
            avg_placement=safe_mean(state.placements),
        )
        for state in holders_by_player.values()
    ]
    breakdown_rows.sort(key=lambda item: (-item.matches, item.player.name, item.player.player_id))

    assignments = sum(state.matches for state in holders_by_player.values())
    wins = sum(state.wins for state in holders_by_player.values())
    decided = sum(state.decided for state in holders_by_player.values())
    return RoleSummary(
        role=role,
        classification=predominant_classification(breakdown),
        classification_breakdown={
            classification.value: breakdown[classification]
            for classification in RoleClassification
        },
        match_count=match_count,
        assignments=assignments,
        wins=wins,
        win_rate=safe_rate(wins, decided),
        player_count=len(holders_by_player),
        players=tuple(breakdown_rows),
        self_effect=effects[PresenceRelation.SELF],
        same_team_effect=effects[PresenceRelation.SAME_TEAM],
        opposing_team_effect=effects[PresenceRelation.OPPOSING_TEAM],
        player_effects=tuple(player_effects),
        role_effects=tuple(_role_to_role_effects(role, roles, matches, outcomes, params)),
    )


def _holder_relations(
    holder: MatchParticipant,
    other_holders: Sequence[MatchParticipant],
) -> set[PresenceRelation]:
    relations: set[PresenceRelation] = set()
    for other in other_holders:
        if other.player_id == holder.player_id:
            relations.add(PresenceRelation.SELF)
        elif holder.team_id is not None and holder.team_id == other.team_id:
            relations.add(PresenceRelation.SAME_TEAM)
        else:
            relations.add(PresenceRelation.OPPOSING_TEAM)
    return relations


def _role_to_role_effects(
    role: RoleRef,
    roles: dict[int, RoleRef],
    matches: Sequence[MatchRecord],
    outcomes: dict[int, frozenset[int] | None],
    params: InsightsParameters,
) -> list[RoleToRoleEffect]:
    # Each holder of ``role`` counts once per relation per match.
    effects: list[RoleToRoleEffect] = []
    for other_role in roles.values():
        if other_role.role_id == role.role_id:
            continue
        tallies = {relation: _Tally() for relation in PresenceRelation}
        for match in matches:
            winners = outcomes[match.match_id]
            if match.is_coop or winners is None:
                continue
            holders = [item for item in match.participants if role.role_id in item.role_ids]
            other_holders = [
                item for item in match.participants if other_role.role_id in item.role_ids
            ]
            if not holders or not other_holders:
                continue
            for holder in holders:
                won = holder.player_id in winners
                for relation in _holder_relations(holder, other_holders):
                    tallies[relation].add(won)

        rates = {
            relation: _relation_rate(tally, params.presence_min_player_matches)
            for relation, tally in tallies.items()
        }
        if all(rate is None for rate in rates.values()):
            continue
        effects.append(
            RoleToRoleEffect(
                other_role=other_role,
                same_player=rates[PresenceRelation.SELF],
                same_team=rates[PresenceRelation.SAME_TEAM],
                opposing_team=rates[PresenceRelation.OPPOSING_TEAM],
            )
        )

    effects.sort(
        key=lambda item: (
            -_max_rate_deviation((item.same_player, item.same_team, item.opposing_team)),
            item.other_role.name,
            item.other_role.role_id,
        )
    )
    return effects[:ROLE_EFFECT_LIMIT]


def _relation_rate(tally: _Tally, min_matches: int) -> RelationRate | None:
    if tally.matches == 0 or tally.matches < min_matches:
        return None
    return RelationRate(win_rate=tally.wins / tally.matches, matches=tally.matches)


def _max_rate_deviation(rates: Iterable[RelationRate | None]) -> float:
    return max((abs(rate.win_rate - 0.5) for rate in rates if rate is not None), default=0.0)


def _build_effect(tally: _Tally, baseline: _Tally, *, min_matches: int) -> PresenceEffect | None:
    if tally.matches == 0 or tally.matches < min_matches:
        return None
    win_rate = tally.wins / tally.matches
    baseline_win_rate = safe_rate(baseline.wins, baseline.matches)
    delta = None if baseline_win_rate is None else win_rate - baseline_win_rate
    return PresenceEffect(
        win_rate=win_rate,
        matches=tally.matches,
        baseline_win_rate=baseline_win_rate,
        baseline_matches=baseline.matches,
        delta=delta,
    )


def _max_deviation(effect: PlayerPresenceEffect) -> float:
    deviations = [
        abs(item.win_rate - 0.5)
        for item in (effect.self_effect, effect.same_team_effect, effect.opposing_team_effect)
        if item is not None
    ]
    return max(deviations, default=0.0)


def _role_combos(
    matches: Sequence[MatchRecord],
    outcomes: dict[int, frozenset[int] | None],
    roles: dict[int, RoleRef],
    params: InsightsParameters,
    target_player_id: int | None,
) -> list[RoleCombo]:
    tallies: dict[tuple[int, ...], _Tally] = {}
    match_counts: Counter[tuple[int, ...]] = Counter()

    for match in matches:
        winners = outcomes[match.match_id]
        seen_in_match: set[tuple[int, ...]] = set()
        for participant in match.participants:
            if target_player_id is not None and participant.player_id != target_player_id:
                continue
            if len(participant.role_ids) < 2:
                continue
            key = tuple(sorted(participant.role_ids))
            tally = tallies.setdefault(key, _Tally())
            if winners is not None:
                tally.add(participant.player_id in winners)
            seen_in_match.add(key)
        for key in seen_in_match:
            match_counts[key] += 1

    combos = [
        RoleCombo(
            role_ids=key,
            roles=tuple(roles[role_id] for role_id in key),
            match_count=match_counts[key],
            wins=tally.wins,
            win_rate=safe_rate(tally.wins, tally.matches),
            recommended=match_counts[key] >= params.role_combo_min_matches,
        )
        for key, tally in tallies.items()
    ]
    combos.sort(key=lambda item: (-item.match_count, item.role_ids))
    return combos


def _player_role_performance(
    matches: Sequence[MatchRecord],
    outcomes: dict[int, frozenset[int] | None],
    classifications: dict[int, RoleClassification],
    target_player_id: int | None,
) -> list[PlayerRolePerformance]:
    states: dict[int, dict[int, _HolderState]] = {}
    players: dict[int, PlayerRef] = {}
    role_refs: dict[int, RoleRef] = {}

    for match in matches:
        winners = outcomes[match.match_id]
        for participant in match.participants:
            if target_player_id is not None and participant.player_id != target_player_id:
                continue
            if not participant.roles:
                continue
            players.setdefault(participant.player_id, participant.player)
            per_role = states.setdefault(participant.player_id, {})
            for role in participant.roles:
                role_refs.setdefault(role.role_id, role)
                state = per_role.setdefault(role.role_id, _HolderState(participant.player))
                state.matches += 1
                state.placements.append(participant.placement)
                if participant.score is not None:
                    state.scores.append(participant.score)
                if winners is not None:
                    state.decided += 1
                    state.wins += int(participant.player_id in winners)

    results: list[PlayerRolePerformance] = []
    for player_id, per_role in states.items():
        entries = [
            PlayerRoleEntry(
                role=role_refs[role_id],
                classification=classifications.get(role_id, RoleClassification.UNIQUE),
                match_count=state.matches,
                wins=state.wins,
                win_rate=safe_rate(state.wins, state.decided),
                avg_placement=safe_mean(state.placements),
                avg_score=safe_mean(state.scores),
            )
            for role_id, state in per_role.items()
        ]
        entries.sort(key=lambda item: (-item.match_count, item.role.name, item.role.role_id))
        results.append(PlayerRolePerformance(player=players[player_id], roles=tuple(entries)))

    results.sort(
        key=lambda item: (
            not item.player.is_user,
            -item.total_matches,
            item.player.name,
            item.player.player_id,
        )
    )
    return results


__all__ = [
    "PlayerPresenceEffect",
    "PlayerRoleEntry",
    "PlayerRolePerformance",
    "PresenceEffect",
    "PresenceRelation",
    "ROLE_EFFECT_LIMIT",
    "RelationRate",
    "RoleClassification",
    "RoleCombo",
    "RoleInsights",
    "RolePlayerBreakdown",
    "RoleSummary",
    "RoleToRoleEffect",
    "analyze_roles",
    "classify_role_in_match",
    "predominant_classification",
    "presence_relations",
]
