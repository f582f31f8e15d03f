"""
Tournament setup and stage progression rules.
"""
import random
from typing import Dict, List, Optional, Tuple

from .errors import SettingsError
from .models import (Match, Participant, Preset, Stage, Team, TeamPool, Tournament,
                     normalize_preset, teams_in_tier)
from .placement import is_bracket_complete
from .standings import all_group_matches_locked

MIN_PARTICIPANTS = 3
MAX_PARTICIPANTS = 24
MIN_GROUP_SIZE = 2

GENERATE_GROUP_STAGE = 'generate_group_stage'
GENERATE_PLAYOFF_BRACKET = 'generate_playoff_bracket'
ENSURE_PLAYOFF_BRACKET = 'ensure_playoff_bracket'

HOST_SUFFIX = ' (Host)'
GUEST_SUFFIX = ' (Guest)'


def sanitize_group_count(participants: int, requested) -> Tuple[int, Optional[str]]:
    """
    Clamp a requested group count to what the participant count supports.

    Every group needs at least two participants. Returns (group_count, note);
    note explains any adjustment and is None when the request was kept.
    """
    try:
        count = int(requested)
    except (TypeError, ValueError):
        raise SettingsError(f"Group count must be a whole number, got {requested!r}.") from None
    if count < 1:
        raise SettingsError("At least one group is required.")
    max_groups = max(1, participants // MIN_GROUP_SIZE)
    if count > max_groups:
        return max_groups, f"{participants} participants allow at most {max_groups} groups; using {max_groups}."
    return count, None


def validate_tournament_settings(name, preset, default_participants, group_count=None,
                                 team_pool='NHL') -> Dict:
    """Check the create-tournament form and return cleaned settings."""
    name = (name or '').strip()
    if not name:
        raise SettingsError("Tournament name is required.")
    try:
        preset = normalize_preset(preset)
        team_pool = team_pool if isinstance(team_pool, TeamPool) else TeamPool(str(team_pool).upper())
    except ValueError as e:
        raise SettingsError(str(e)) from None
    try:
        participants = int(default_participants)
    except (TypeError, ValueError):
        raise SettingsError("Participant count must be a whole number.") from None
    if participants < MIN_PARTICIPANTS or participants > MAX_PARTICIPANTS:
        raise SettingsError(f"Participants must be between {MIN_PARTICIPANTS} and {MAX_PARTICIPANTS}.")

    note = None
    if preset.has_group_stage:
        group_count, note = sanitize_group_count(participants, group_count if group_count is not None else 1)
    else:
        group_count = None

    return {
        'name': name,
        'preset': preset,
        'team_pool': team_pool,
        'default_participants': participants,
        'group_count': group_count,
        'note': note,
    }


def all_participants_ready(tournament: Tournament, participants: List[Participant]) -> bool:
    """Every slot is filled and every participant is locked with a team."""
    return (len(participants) == tournament.default_participants
            and all(p.locked and p.team_id for p in participants))


def _by_stage(matches: List[Match], stage: Stage) -> List[Match]:
    return [m for m in matches if m.stage is stage]


def can_generate_groups(tournament: Tournament, participants: List[Participant],
                        matches: List[Match]) -> bool:
    return (tournament.preset.has_group_stage
            and all_participants_ready(tournament, participants)
            and not _by_stage(matches, Stage.GROUP))


def can_generate_playoffs(tournament: Tournament, participants: List[Participant],
                          matches: List[Match]) -> bool:
    if tournament.preset is Preset.PLAYOFFS_ONLY:
        return all_participants_ready(tournament, participants)
    return all_group_matches_locked(matches)


def next_procedure(tournament: Tournament, participants: List[Participant],
                   matches: List[Match]) -> Optional[str]:
    """Name of the remote generation procedure the tournament is waiting for, if any."""
    if can_generate_groups(tournament, participants, matches):
        return GENERATE_GROUP_STAGE
    playoff = _by_stage(matches, Stage.PLAYOFF)
    if not playoff:
        if can_generate_playoffs(tournament, participants, matches):
            return GENERATE_PLAYOFF_BRACKET
        return None
    if not is_bracket_complete(playoff):
        return ENSURE_PLAYOFF_BRACKET
    return None


def determine_tournament_phase(tournament: Tournament, matches: List[Match]) -> str:
    """Determine the current phase of the tournament.

    Returns:
        One of: 'setup', 'group', 'playoff', 'complete'.
    """
    playoff = _by_stage(matches, Stage.PLAYOFF)
    if playoff:
        if is_bracket_complete(playoff):
            return 'complete'
        return 'playoff'
    if _by_stage(matches, Stage.GROUP):
        return 'group'
    return 'setup'


def assigned_team_ids(participants: List[Participant], exclude: Optional[Participant] = None) -> set:
    return {p.team_id for p in participants
            if p.team_id and (exclude is None or p.id != exclude.id)}


def check_team_available(team_id, participant: Participant, participants: List[Participant]):
    """Raise SettingsError when another participant already holds ``team_id``."""
    if team_id and team_id in assigned_team_ids(participants, exclude=participant):
        raise SettingsError("That team is already taken in this tournament.", 'TEAM_TAKEN')


def available_teams(teams: List[Team], participants: List[Participant], tier: Optional[str] = None,
                    participant: Optional[Participant] = None) -> List[Team]:
    """Teams matching the tier filter that nobody else has picked."""
    taken = assigned_team_ids(participants, exclude=participant)
    return [t for t in teams_in_tier(teams, tier) if t.id not in taken]


def pick_random_team(teams: List[Team], participants: List[Participant], tier: Optional[str] = None,
                     participant: Optional[Participant] = None, rng=None) -> Team:
    candidates = available_teams(teams, participants, tier, participant)
    if not candidates:
        raise SettingsError("No unassigned teams left in pool.", 'NO_TEAMS_LEFT')
    return (rng or random).choice(candidates)


def host_display_name(name: str) -> str:
    return name if HOST_SUFFIX.strip() in name else f"{name}{HOST_SUFFIX}"


def order_participants(participants: List[Participant], tournament: Tournament) -> List[Participant]:
    """Host first, then everybody else in the order they joined."""
    def sort_key(p):
        is_host = p.user_id is not None and p.user_id == tournament.created_by
        return (not is_host, str(p.created_at or ''), str(p.id))
    return sorted(participants, key=sort_key)
