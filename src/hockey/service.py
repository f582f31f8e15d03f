"""
Tournament operations as seen by the web layer.

Every call loads a fresh snapshot from the store, checks permissions against
that snapshot, and either performs one write or returns derived data.
Nothing derived is written back.
"""
import logging
import uuid
from typing import Dict, List, Optional

from .bracket import build_bracket_rounds, validate_bracket_graph
from .errors import BackendUnavailable, NotFound, PermissionDenied, ResultValidationError, SettingsError, StoreError
from .lifecycle import (GENERATE_GROUP_STAGE, GUEST_SUFFIX, check_team_available, determine_tournament_phase,
                        host_display_name, next_procedure, order_participants, pick_random_team,
                        validate_tournament_settings)
from .models import BracketType, Match, Stage, TournamentStatus
from .permissions import (SessionContext, can_clear_participant, can_edit_match, can_manage_participant,
                          can_reopen_result, is_host_or_admin)
from .placement import final_standings, is_bracket_complete, resolve_placements, reveal_placements
from .standings import compute_group_standings, compute_overall_ranking
from .validation import validate_result
from .visibility import MatchState, classify_matches, displayable_matches

logger = logging.getLogger(__name__)


class TournamentService:
    def __init__(self, store, procedures=None):
        self.store = store
        self.procedures = procedures

    # -- reads -------------------------------------------------------------

    def _snapshot(self, tournament_id) -> Dict:
        tournament = self.store.get_tournament(tournament_id)
        return {
            'tournament': tournament,
            'participants': self.store.list_participants(tournament_id),
            'matches': self.store.list_matches(tournament_id),
            'standings': self.store.list_group_standings(tournament_id),
        }

    def list_tournaments(self) -> List[Dict]:
        return [t.to_row() for t in self.store.list_tournaments()]

    def bracket_view(self, tournament_id, session: Optional[SessionContext] = None) -> Dict:
        snap = self._snapshot(tournament_id)
        return self._bracket(snap, session or SessionContext())

    def standings_view(self, tournament_id) -> Dict:
        snap = self._snapshot(tournament_id)
        return self._standings(snap)

    def load_view(self, tournament_id, session: SessionContext) -> Dict:
        """Everything the tournament page shows, recomputed from the current rows."""
        snap = self._snapshot(tournament_id)
        tournament = snap['tournament']
        participants = snap['participants']
        matches = snap['matches']
        teams = {t.id: t for t in self.store.list_teams(tournament.team_pool)}
        states = classify_matches(matches)

        group_matches = [m for m in matches if m.stage is Stage.GROUP]
        playoff = [m for m in matches if m.stage is Stage.PLAYOFF]
        placements = reveal_placements(resolve_placements(playoff), playoff)
        violations = validate_bracket_graph(playoff)
        if violations:
            logger.warning(f'Tournament {tournament_id} bracket wiring: {"; ".join(violations)}')

        participant_rows = []
        for participant in order_participants(participants, tournament):
            row = participant.to_row()
            team = teams.get(participant.team_id)
            row['team'] = team.to_row() if team else None
            row['can_manage'] = can_manage_participant(session, tournament, participant)
            participant_rows.append(row)

        return {
            'tournament': tournament.to_row(),
            'phase': determine_tournament_phase(tournament, matches),
            'is_host_or_admin': is_host_or_admin(session, tournament),
            'participants': participant_rows,
            'open_slots': max(0, tournament.default_participants - len(participants)),
            'group_matches': [self._match_dict(m, states, session, snap) for m in group_matches],
            'playoff_matches': [self._match_dict(m, states, session, snap)
                                for m in displayable_matches(playoff)],
            'standings': self._standings(snap),
            'bracket': self._bracket(snap, session),
            'placements': _placements_dict(placements),
            'final_standings': final_standings(placements, participants, playoff),
            'next_procedure': next_procedure(tournament, participants, matches),
            'bracket_violations': violations,
        }

    def _standings(self, snap: Dict) -> Dict:
        groups = compute_group_standings(snap['standings'], snap['matches'])
        overall = compute_overall_ranking(snap['standings'], snap['matches'])
        return {
            'groups': {str(group_id): entries for group_id, entries in groups.items()},
            'overall': {str(pid): rank for pid, rank in overall.items()},
        }

    def _bracket(self, snap: Dict, session: SessionContext) -> Dict:
        playoff = [m for m in snap['matches'] if m.stage is Stage.PLAYOFF]
        names = {p.id: p.display_name for p in snap['participants']}
        states = classify_matches(playoff)

        def serialise(rounds):
            for round_data in rounds:
                for slot in round_data['slots']:
                    match = slot['match']
                    slot['match'] = self._match_dict(match, states, session, snap) if match else None
            return rounds

        return {
            'winners': serialise(build_bracket_rounds(playoff, BracketType.WINNERS, names=names)),
            'losers': serialise(build_bracket_rounds(playoff, BracketType.LOSERS, hide_empty=True,
                                                     names=names)),
        }

    def _match_dict(self, match: Match, states: Dict, session: SessionContext, snap: Dict) -> Dict:
        row = match.to_row()
        row['home_participant_name'] = match.home_participant_name
        row['away_participant_name'] = match.away_participant_name
        row['state'] = states[match.id].value if match.id in states else None
        row['can_edit'] = can_edit_match(session, snap['tournament'], match, snap['participants'],
                                         snap['matches'])
        return row

    # -- tournaments -------------------------------------------------------

    def create_tournament(self, session: SessionContext, name, preset, default_participants,
                          group_count=None, team_pool='NHL') -> Dict:
        if not session.is_authenticated:
            raise PermissionDenied("Sign in to create a tournament.")
        settings = validate_tournament_settings(name, preset, default_participants, group_count, team_pool)
        tournament = self.store.create_tournament(settings, session.user_id)
        return {'tournament': tournament.to_row(), 'note': settings['note']}

    def advance(self, session: SessionContext, tournament_id) -> Optional[str]:
        """Trigger the generation procedure the tournament is waiting for."""
        snap = self._snapshot(tournament_id)
        tournament = snap['tournament']
        if not is_host_or_admin(session, tournament):
            raise PermissionDenied("Only the host can advance the tournament.")
        procedure = next_procedure(tournament, snap['participants'], snap['matches'])
        if procedure is None:
            return None
        if self.procedures is None:
            raise BackendUnavailable("No backend configured for bracket generation.")
        self.procedures.call(procedure, tournament_id)
        stage = Stage.GROUP if procedure == GENERATE_GROUP_STAGE else Stage.PLAYOFF
        self.store.update_tournament(tournament_id, status=TournamentStatus.ONGOING, stage=stage)
        return procedure

    # -- participants ------------------------------------------------------

    def add_participant(self, session: SessionContext, tournament_id, user_id=None,
                        display_name: str = None, guest_name: str = None):
        tournament = self.store.get_tournament(tournament_id)
        if not is_host_or_admin(session, tournament):
            raise PermissionDenied("Only the host can add participants.")
        if user_id is not None:
            name = display_name or str(user_id)
            if user_id == tournament.created_by:
                name = host_display_name(name)
            self.store.add_member(tournament_id, user_id, 'player')
            return self.store.create_participant(tournament_id, name, user_id=user_id)
        guest_name = (guest_name or '').strip()
        if not guest_name:
            raise SettingsError("Guest name is required.")
        return self.store.create_participant(tournament_id, f"{guest_name}{GUEST_SUFFIX}",
                                             guest_id=str(uuid.uuid4()))

    def assign_team(self, session: SessionContext, tournament_id, participant_id, team_id=None,
                    random_tier: str = None):
        """Pick a team for a participant, explicitly or at random from the free teams of a tier."""
        tournament = self.store.get_tournament(tournament_id)
        participants = self.store.list_participants(tournament_id)
        participant = self.store.get_participant(tournament_id, participant_id)
        if not can_manage_participant(session, tournament, participant):
            raise PermissionDenied("You cannot change this participant's team.")
        if participant.locked:
            raise PermissionDenied("Participant is locked; re-open it before changing the team.")

        teams = self.store.list_teams(tournament.team_pool)
        if random_tier is not None or team_id is None:
            team_id = pick_random_team(teams, participants, random_tier, participant).id
        else:
            by_id = {str(t.id): t for t in teams}
            if str(team_id) not in by_id:
                raise SettingsError("Unknown team for this tournament's pool.", 'UNKNOWN_TEAM')
            team_id = by_id[str(team_id)].id
            check_team_available(team_id, participant, participants)
        return self.store.update_participant(tournament_id, participant_id, team_id=team_id)

    def lock_participant(self, session: SessionContext, tournament_id, participant_id):
        tournament = self.store.get_tournament(tournament_id)
        participant = self.store.get_participant(tournament_id, participant_id)
        if not can_manage_participant(session, tournament, participant):
            raise PermissionDenied("You cannot lock this participant.")
        if participant.locked:
            raise StoreError("Participant is already locked.", 'ALREADY_LOCKED')
        if not participant.team_id:
            raise SettingsError("Pick a team before locking in.", 'NO_TEAM')
        return self.store.update_participant(tournament_id, participant_id, locked=True)

    def unlock_participant(self, session: SessionContext, tournament_id, participant_id):
        tournament = self.store.get_tournament(tournament_id)
        if not is_host_or_admin(session, tournament):
            raise PermissionDenied("Only the host can re-open a participant.")
        self.store.get_participant(tournament_id, participant_id)
        return self.store.update_participant(tournament_id, participant_id, locked=False)

    def clear_participant(self, session: SessionContext, tournament_id, participant_id):
        tournament = self.store.get_tournament(tournament_id)
        if not can_clear_participant(session, tournament):
            raise PermissionDenied("Only the host can clear a participant slot.")
        self.store.remove_participant(tournament_id, participant_id)

    # -- results -----------------------------------------------------------

    def _match(self, snap: Dict, match_id) -> Match:
        for match in snap['matches']:
            if match.id == match_id:
                return match
        raise NotFound(f"Match {match_id} not found")

    def save_result(self, session: SessionContext, tournament_id, match_id, form: Dict):
        """Validate a typed-in result and upsert it. Nothing is written on failure."""
        snap = self._snapshot(tournament_id)
        match = self._match(snap, match_id)
        if match.is_locked:
            raise PermissionDenied("Result is locked; re-open it first.")
        if not can_edit_match(session, snap['tournament'], match, snap['participants'], snap['matches']):
            raise PermissionDenied("You cannot enter results for this match.")
        if classify_matches(snap['matches'])[match.id] is not MatchState.PLAYABLE:
            raise ResultValidationError("Both participants must be known before entering a result.",
                                        'MATCH_NOT_READY')

        parsed = validate_result(form.get('home_score'), form.get('away_score'),
                                 form.get('home_shots'), form.get('away_shots'),
                                 form.get('decision', 'R'))
        self.store.upsert_result(tournament_id, match_id, parsed.as_row())
        return parsed

    def lock_result(self, session: SessionContext, tournament_id, match_id) -> None:
        snap = self._snapshot(tournament_id)
        match = self._match(snap, match_id)
        if match.is_locked:
            raise StoreError("Result is already locked.", 'RESULT_LOCKED')
        if not can_edit_match(session, snap['tournament'], match, snap['participants'], snap['matches']):
            raise PermissionDenied("You cannot lock this result.")
        if match.result is None:
            raise StoreError("Save a result before locking it.", 'NO_RESULT')
        result = match.result
        validate_result(result.home_score, result.away_score, result.home_shots, result.away_shots,
                        result.decision)
        self.store.lock_result(tournament_id, match_id)

        if match.stage is Stage.PLAYOFF:
            matches = self.store.list_matches(tournament_id, Stage.PLAYOFF)
            if is_bracket_complete(matches):
                self.store.update_tournament(tournament_id, status=TournamentStatus.CLOSED)
                logger.info(f'Tournament {tournament_id} closed: playoff bracket complete')

    def reopen_result(self, session: SessionContext, tournament_id, match_id) -> None:
        snap = self._snapshot(tournament_id)
        match = self._match(snap, match_id)
        if not match.is_locked:
            raise StoreError("Result is not locked.", 'RESULT_NOT_LOCKED')
        if not can_reopen_result(session, snap['tournament'], match, snap['matches']):
            raise PermissionDenied("Result cannot be re-opened: not the host, or a later match is locked.")
        self.store.reopen_result(tournament_id, match_id)
        if snap['tournament'].status is TournamentStatus.CLOSED:
            self.store.update_tournament(tournament_id, status=TournamentStatus.ONGOING)


def _placements_dict(placements: Dict) -> Dict:
    return {
        'complete': placements['complete'],
        'ranks': {str(pid): rank for pid, rank in placements['ranks'].items()},
        'medals': {str(pid): medal.value for pid, medal in placements['medals'].items()},
    }
