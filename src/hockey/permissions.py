"""
Who may change what.

These predicates are checked again by every mutating service call, not only
used to hide controls.
"""
from typing import Dict, List, Optional

from .bracket import BracketGraph
from .models import Match, Participant, Tournament

ROLE_ADMIN = 'admin'
ROLE_HOST = 'host'
ROLE_PLAYER = 'player'


class SessionContext:
    """
    The signed-in user as seen by the core.

    Args:
        user_id: Id of the signed-in user, None for anonymous visitors
        role: Site-wide role ('admin' or a regular role)
        memberships: tournament id -> membership role ('host', 'player')
    """

    def __init__(self, user_id=None, role: Optional[str] = None, memberships: Optional[Dict] = None):
        self.user_id = user_id
        self.role = role
        self.memberships = memberships or {}

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def __repr__(self):
        return f"SessionContext(user_id={self.user_id}, role={self.role})"


def is_host_or_admin(session: SessionContext, tournament: Tournament) -> bool:
    if not session.is_authenticated:
        return False
    if session.is_admin:
        return True
    if tournament.created_by is not None and tournament.created_by == session.user_id:
        return True
    return session.memberships.get(tournament.id) == ROLE_HOST


def _plays_in(session: SessionContext, match: Match, participants: List[Participant]) -> bool:
    own = {p.id for p in participants if p.user_id is not None and p.user_id == session.user_id}
    return any(pid in own for pid in match.participant_ids)


def can_reopen_result(session: SessionContext, tournament: Tournament, match: Match,
                      matches: List[Match]) -> bool:
    """Host/admin may re-open a locked result unless a later match has already been locked."""
    if not match.is_locked or not is_host_or_admin(session, tournament):
        return False
    return not BracketGraph(matches).has_locked_descendant(match.id)


def can_edit_match(session: SessionContext, tournament: Tournament, match: Match,
                   participants: List[Participant], matches: Optional[List[Match]] = None) -> bool:
    """
    Whether the session may enter or change the result of ``match``.

    Unlocked results: host/admin, or a user playing in the match.
    Locked results: only host/admin through a re-open, and only while no
    downstream match holds a locked result.
    """
    if not session.is_authenticated:
        return False
    if match.is_locked:
        return can_reopen_result(session, tournament, match, matches or [match])
    if is_host_or_admin(session, tournament):
        return True
    return _plays_in(session, match, participants)


def can_manage_participant(session: SessionContext, tournament: Tournament,
                           participant: Participant) -> bool:
    """Pick a team for / lock a participant: the participant's own user or host/admin."""
    if not session.is_authenticated:
        return False
    if is_host_or_admin(session, tournament):
        return True
    return participant.user_id is not None and participant.user_id == session.user_id


def can_clear_participant(session: SessionContext, tournament: Tournament) -> bool:
    return is_host_or_admin(session, tournament)
