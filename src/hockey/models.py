"""
Row models and enumerations for tournaments, participants, teams and matches.

Rows arrive from the data store as plain dicts; ``from_row`` builds the model
and ``to_row`` turns it back into a dict suitable for YAML/JSON.
"""
from enum import Enum
from typing import Dict, List, Optional


class Preset(Enum):
    PLAYOFFS_ONLY = 'playoffs_only'
    FULL_WITH_LOSERS = 'full_with_losers'
    FULL_NO_LOSERS = 'full_no_losers'

    @property
    def has_group_stage(self) -> bool:
        return self is not Preset.PLAYOFFS_ONLY

    @property
    def has_losers_bracket(self) -> bool:
        return self is Preset.FULL_WITH_LOSERS


# Older tournaments were created before the losers bracket became optional.
_LEGACY_PRESETS = {
    'full_tournament': Preset.FULL_WITH_LOSERS,
}


def normalize_preset(value) -> Preset:
    """Map a stored preset value (enum, current or legacy string) to a Preset."""
    if isinstance(value, Preset):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Unknown tournament preset: {value!r}")
    key = value.strip().lower()
    if key in _LEGACY_PRESETS:
        return _LEGACY_PRESETS[key]
    try:
        return Preset(key)
    except ValueError:
        raise ValueError(f"Unknown tournament preset: {value!r}") from None


class TeamPool(Enum):
    NHL = 'NHL'
    INTL = 'INTL'


class Stage(Enum):
    GROUP = 'GROUP'
    PLAYOFF = 'PLAYOFF'


class TournamentStatus(Enum):
    DRAFT = 'Draft'
    ONGOING = 'Ongoing'
    CLOSED = 'Closed'


class BracketType(Enum):
    WINNERS = 'WINNERS'
    LOSERS = 'LOSERS'


class Decision(Enum):
    REGULATION = 'R'
    OVERTIME = 'OT'
    SHOOTOUT = 'SO'


class Side(Enum):
    HOME = 'HOME'
    AWAY = 'AWAY'

    @property
    def other(self) -> 'Side':
        return Side.AWAY if self is Side.HOME else Side.HOME


class Medal(Enum):
    GOLD = 'gold'
    SILVER = 'silver'
    BRONZE = 'bronze'


def _enum_or_none(enum_cls, value):
    if value is None or value == '':
        return None
    if isinstance(value, enum_cls):
        return value
    if enum_cls is TournamentStatus:
        return enum_cls(str(value).capitalize())
    return enum_cls(str(value).strip().upper())


def _enum_value(member):
    return member.value if member is not None else None


class Tournament:
    def __init__(self, id, name, preset, team_pool=TeamPool.NHL, default_participants=4,
                 group_count=None, stage=None, status=TournamentStatus.DRAFT, created_by=None,
                 created_at=None):
        self.id = id
        self.name = name
        self.preset = normalize_preset(preset)
        self.team_pool = _enum_or_none(TeamPool, team_pool) or TeamPool.NHL
        self.default_participants = int(default_participants)
        self.group_count = group_count
        self.stage = _enum_or_none(Stage, stage)
        self.status = _enum_or_none(TournamentStatus, status) or TournamentStatus.DRAFT
        self.created_by = created_by
        self.created_at = created_at

    @classmethod
    def from_row(cls, row: Dict) -> 'Tournament':
        return cls(
            id=row['id'],
            name=row.get('name', ''),
            preset=row.get('preset_id') or row.get('preset'),
            team_pool=row.get('team_pool'),
            default_participants=row.get('default_participants', 4),
            group_count=row.get('group_count'),
            stage=row.get('stage'),
            status=row.get('status'),
            created_by=row.get('created_by'),
            created_at=row.get('created_at'),
        )

    def to_row(self) -> Dict:
        return {
            'id': self.id,
            'name': self.name,
            'preset_id': self.preset.value,
            'team_pool': self.team_pool.value,
            'default_participants': self.default_participants,
            'group_count': self.group_count,
            'stage': _enum_value(self.stage),
            'status': self.status.value,
            'created_by': self.created_by,
            'created_at': self.created_at,
        }

    def __repr__(self):
        return f"Tournament(id={self.id}, name={self.name}, preset={self.preset.value})"


class Participant:
    def __init__(self, id, tournament_id, display_name, user_id=None, guest_id=None,
                 team_id=None, locked=False, created_at=None):
        if (user_id is None) == (guest_id is None):
            raise ValueError("Participant needs exactly one of user_id or guest_id")
        self.id = id
        self.tournament_id = tournament_id
        self.display_name = display_name
        self.user_id = user_id
        self.guest_id = guest_id
        self.team_id = team_id
        self.locked = bool(locked)
        self.created_at = created_at

    @property
    def is_guest(self) -> bool:
        return self.guest_id is not None

    @classmethod
    def from_row(cls, row: Dict) -> 'Participant':
        return cls(
            id=row['id'],
            tournament_id=row.get('tournament_id'),
            display_name=row.get('display_name', ''),
            user_id=row.get('user_id'),
            guest_id=row.get('guest_id'),
            team_id=row.get('team_id'),
            locked=row.get('locked', False),
            created_at=row.get('created_at'),
        )

    def to_row(self) -> Dict:
        return {
            'id': self.id,
            'tournament_id': self.tournament_id,
            'display_name': self.display_name,
            'user_id': self.user_id,
            'guest_id': self.guest_id,
            'team_id': self.team_id,
            'locked': self.locked,
            'created_at': self.created_at,
        }

    def __repr__(self):
        return f"Participant(id={self.id}, name={self.display_name}, team={self.team_id}, locked={self.locked})"


TIER_TOP_5 = 'Top 5'
TIER_TOP_10 = 'Top 10'
TIER_MIDDLE = 'Middle Tier'
TIER_BOTTOM = 'Bottom Tier'
TIERS = [TIER_TOP_5, TIER_TOP_10, TIER_MIDDLE, TIER_BOTTOM]


class Team:
    def __init__(self, id, code, name=None, pool=TeamPool.NHL, overall=0, offense=0, defense=0,
                 goalie=0, short_name=None, primary_color=None, secondary_color=None,
                 text_color=None, tier=None):
        self.id = id
        self.code = code
        self.name = name or code
        self.short_name = short_name or code
        self.pool = _enum_or_none(TeamPool, pool) or TeamPool.NHL
        self.overall = overall
        self.offense = offense
        self.defense = defense
        self.goalie = goalie
        self.primary_color = primary_color
        self.secondary_color = secondary_color
        self.text_color = text_color
        self.tier = tier

    @classmethod
    def from_row(cls, row: Dict) -> 'Team':
        return cls(
            id=row['id'],
            code=row.get('code', ''),
            name=row.get('name'),
            pool=row.get('pool') or row.get('team_pool'),
            overall=row.get('overall', 0),
            offense=row.get('offense', 0),
            defense=row.get('defense', 0),
            goalie=row.get('goalie', 0),
            short_name=row.get('short_name'),
            primary_color=row.get('primary_color'),
            secondary_color=row.get('secondary_color'),
            text_color=row.get('text_color'),
            tier=row.get('ovr_tier') or row.get('tier'),
        )

    def to_row(self) -> Dict:
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name,
            'short_name': self.short_name,
            'pool': self.pool.value,
            'overall': self.overall,
            'offense': self.offense,
            'defense': self.defense,
            'goalie': self.goalie,
            'primary_color': self.primary_color,
            'secondary_color': self.secondary_color,
            'text_color': self.text_color,
            'ovr_tier': self.tier,
        }

    def __repr__(self):
        return f"Team(code={self.code}, overall={self.overall}, tier={self.tier})"


def tier_for_rank(rank: int, pool_size: int) -> str:
    """Tier label for a team's 1-based overall rank inside its pool."""
    if rank <= 5:
        return TIER_TOP_5
    if rank <= 10:
        return TIER_TOP_10
    remaining = pool_size - 10
    if rank <= 10 + (remaining + 1) // 2:
        return TIER_MIDDLE
    return TIER_BOTTOM


def assign_team_tiers(teams: List[Team]) -> List[Team]:
    """
    Set ``tier`` on every team from its overall rating.

    Teams are ranked within their own pool (overall descending, code as
    tie-break). Returns the teams in ranked order per pool.
    """
    by_pool = {}
    for team in teams:
        by_pool.setdefault(team.pool, []).append(team)

    ranked = []
    for pool in sorted(by_pool, key=lambda p: p.value):
        pool_teams = sorted(by_pool[pool], key=lambda t: (-(t.overall or 0), t.code))
        for index, team in enumerate(pool_teams):
            team.tier = tier_for_rank(index + 1, len(pool_teams))
        ranked.extend(pool_teams)
    return ranked


def teams_in_tier(teams: List[Team], tier: Optional[str]) -> List[Team]:
    """Filter teams by tier; ``Top 10`` includes ``Top 5`` and None/``ALL`` keeps everything."""
    if tier is None or tier == 'ALL':
        return list(teams)
    if tier not in TIERS:
        raise ValueError(f"Unknown team tier: {tier!r}")
    if tier == TIER_TOP_10:
        return [t for t in teams if t.tier in (TIER_TOP_5, TIER_TOP_10)]
    return [t for t in teams if t.tier == tier]


class MatchResult:
    def __init__(self, match_id, home_score=None, away_score=None, home_shots=None,
                 away_shots=None, decision=Decision.REGULATION, locked=False):
        self.match_id = match_id
        self.home_score = home_score
        self.away_score = away_score
        self.home_shots = home_shots
        self.away_shots = away_shots
        self.decision = _enum_or_none(Decision, decision) or Decision.REGULATION
        self.locked = bool(locked)

    @property
    def is_complete(self) -> bool:
        return None not in (self.home_score, self.away_score, self.home_shots, self.away_shots)

    @property
    def winner_side(self) -> Optional[Side]:
        if not self.is_complete or self.home_score == self.away_score:
            return None
        return Side.HOME if self.home_score > self.away_score else Side.AWAY

    @classmethod
    def from_row(cls, row: Dict) -> 'MatchResult':
        return cls(
            match_id=row.get('match_id'),
            home_score=row.get('home_score'),
            away_score=row.get('away_score'),
            home_shots=row.get('home_shots'),
            away_shots=row.get('away_shots'),
            decision=row.get('decision'),
            locked=row.get('locked', False),
        )

    def to_row(self) -> Dict:
        return {
            'match_id': self.match_id,
            'home_score': self.home_score,
            'away_score': self.away_score,
            'home_shots': self.home_shots,
            'away_shots': self.away_shots,
            'decision': self.decision.value,
            'locked': self.locked,
        }

    def __repr__(self):
        return (f"MatchResult(match_id={self.match_id}, score={self.home_score}-{self.away_score}, "
                f"decision={self.decision.value}, locked={self.locked})")


class Match:
    def __init__(self, id, tournament_id=None, stage=Stage.PLAYOFF, round=1, bracket_slot=None,
                 bracket_type=None, group_id=None, next_match_id=None, next_match_side=None,
                 home_participant_id=None, away_participant_id=None, created_at=None,
                 result=None, home_participant_name=None, away_participant_name=None):
        self.id = id
        self.tournament_id = tournament_id
        self.stage = _enum_or_none(Stage, stage) or Stage.PLAYOFF
        self.round = int(round) if round is not None else 1
        self.bracket_slot = int(bracket_slot) if bracket_slot is not None else None
        bracket_type = _enum_or_none(BracketType, bracket_type)
        if bracket_type is None and self.stage is Stage.PLAYOFF:
            bracket_type = BracketType.WINNERS
        self.bracket_type = bracket_type
        self.group_id = group_id
        self.next_match_id = next_match_id
        self.next_match_side = _enum_or_none(Side, next_match_side)
        self.home_participant_id = home_participant_id
        self.away_participant_id = away_participant_id
        self.created_at = created_at
        self.result = result
        self.home_participant_name = home_participant_name
        self.away_participant_name = away_participant_name

    @property
    def is_locked(self) -> bool:
        return self.result is not None and self.result.locked

    @property
    def participant_ids(self) -> List:
        return [p for p in (self.home_participant_id, self.away_participant_id) if p is not None]

    def participant_on(self, side: Side):
        return self.home_participant_id if side is Side.HOME else self.away_participant_id

    def side_of(self, participant_id) -> Optional[Side]:
        if participant_id is None:
            return None
        if participant_id == self.home_participant_id:
            return Side.HOME
        if participant_id == self.away_participant_id:
            return Side.AWAY
        return None

    @property
    def winner_id(self):
        """Winner of a locked result, else None."""
        if not self.is_locked:
            return None
        side = self.result.winner_side
        return self.participant_on(side) if side else None

    @property
    def loser_id(self):
        if not self.is_locked:
            return None
        side = self.result.winner_side
        return self.participant_on(side.other) if side else None

    @classmethod
    def from_row(cls, row: Dict) -> 'Match':
        result_row = row.get('result')
        return cls(
            id=row['id'],
            tournament_id=row.get('tournament_id'),
            stage=row.get('stage'),
            round=row.get('round', 1),
            bracket_slot=row.get('bracket_slot'),
            bracket_type=row.get('bracket_type'),
            group_id=row.get('group_id'),
            next_match_id=row.get('next_match_id'),
            next_match_side=row.get('next_match_side'),
            home_participant_id=row.get('home_participant_id'),
            away_participant_id=row.get('away_participant_id'),
            created_at=row.get('created_at'),
            result=MatchResult.from_row({'match_id': row['id'], **result_row}) if result_row else None,
            home_participant_name=row.get('home_participant_name'),
            away_participant_name=row.get('away_participant_name'),
        )

    def to_row(self) -> Dict:
        return {
            'id': self.id,
            'tournament_id': self.tournament_id,
            'stage': self.stage.value,
            'round': self.round,
            'bracket_slot': self.bracket_slot,
            'bracket_type': _enum_value(self.bracket_type),
            'group_id': self.group_id,
            'next_match_id': self.next_match_id,
            'next_match_side': _enum_value(self.next_match_side),
            'home_participant_id': self.home_participant_id,
            'away_participant_id': self.away_participant_id,
            'created_at': self.created_at,
            'result': self.result.to_row() if self.result else None,
        }

    def __repr__(self):
        bracket = self.bracket_type.value if self.bracket_type else self.stage.value
        return (f"Match(id={self.id}, {bracket} R{self.round}.{self.bracket_slot}, "
                f"home={self.home_participant_id}, away={self.away_participant_id})")


class GroupStanding:
    """A group standings row as supplied by the external ranking view."""

    def __init__(self, group_id, participant_id, points=0, goals_for=0, goals_against=0,
                 rank_in_group=None, group_code=None, display_name=None, team_id=None):
        self.group_id = group_id
        self.participant_id = participant_id
        self.points = points or 0
        self.goals_for = goals_for or 0
        self.goals_against = goals_against or 0
        self.rank_in_group = rank_in_group
        self.group_code = group_code
        self.display_name = display_name
        self.team_id = team_id

    @classmethod
    def from_row(cls, row: Dict) -> 'GroupStanding':
        return cls(
            group_id=row.get('group_id'),
            participant_id=row['participant_id'],
            points=row.get('points', 0),
            goals_for=row.get('goals_for', 0),
            goals_against=row.get('goals_against', 0),
            rank_in_group=row.get('rank_in_group'),
            group_code=row.get('group_code'),
            display_name=row.get('display_name'),
            team_id=row.get('team_id'),
        )

    def __repr__(self):
        return f"GroupStanding(group={self.group_id}, participant={self.participant_id}, points={self.points})"
