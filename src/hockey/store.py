"""
YAML-backed snapshot store.

Stands in for the hosted backend when running locally: one YAML file per
tournament plus shared ``teams.yaml`` and ``users.yaml``. Writes are
serialised with a file lock; reads return fresh model objects every time.
"""
import logging
import os
import uuid
from datetime import datetime
from typing import Dict, List, Optional

import yaml
from filelock import FileLock

from .errors import NotFound, StoreError
from .models import (GroupStanding, Match, Participant, Stage, Team, TeamPool, Tournament,
                     TournamentStatus, assign_team_tiers)

logger = logging.getLogger(__name__)

RESULT_FIELDS = ('home_score', 'away_score', 'home_shots', 'away_shots', 'decision')
PARTICIPANT_FIELDS = ('team_id', 'locked', 'display_name')


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> str:
    return datetime.now().isoformat()


class YamlStore:
    def __init__(self, data_dir: str, lock_timeout: float = 10):
        self.data_dir = data_dir
        self.tournaments_dir = os.path.join(data_dir, 'tournaments')
        self.teams_file = os.path.join(data_dir, 'teams.yaml')
        self.users_file = os.path.join(data_dir, 'users.yaml')
        os.makedirs(self.tournaments_dir, exist_ok=True)
        self._lock = FileLock(os.path.join(data_dir, '.lock'), timeout=lock_timeout)

    # -- files -------------------------------------------------------------

    def _tournament_file(self, tournament_id) -> str:
        return os.path.join(self.tournaments_dir, f'{tournament_id}.yaml')

    def _read_yaml(self, path: str, default):
        if not os.path.exists(path):
            return default
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except Exception as e:
            logger.warning(f'Failed to parse {path}: {e}')
            return default
        return data if data else default

    def _write_yaml(self, path: str, data):
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def _load(self, tournament_id) -> Dict:
        path = self._tournament_file(tournament_id)
        data = self._read_yaml(path, None)
        if data is None:
            raise NotFound(f"Tournament {tournament_id} not found")
        for key in ('members', 'participants', 'groups', 'standings', 'matches'):
            data.setdefault(key, [])
        return data

    def _save(self, tournament_id, data: Dict):
        self._write_yaml(self._tournament_file(tournament_id), data)

    # -- users and teams ---------------------------------------------------

    def load_users(self) -> List[Dict]:
        return self._read_yaml(self.users_file, {}).get('users', [])

    def get_user(self, username: str) -> Optional[Dict]:
        username = (username or '').lower().strip()
        for user in self.load_users():
            if user.get('username', '').lower() == username:
                return user
        return None

    def save_users(self, users: List[Dict]):
        with self._lock:
            self._write_yaml(self.users_file, {'users': users})

    def list_teams(self, pool=None) -> List[Team]:
        """Teams with tiers assigned, optionally limited to one pool."""
        rows = self._read_yaml(self.teams_file, {}).get('teams', [])
        teams = [Team.from_row(row) for row in rows]
        if pool is not None:
            pool = pool if isinstance(pool, TeamPool) else TeamPool(str(pool).upper())
            teams = [t for t in teams if t.pool is pool]
        return assign_team_tiers(teams)

    def save_teams(self, teams: List[Team]):
        with self._lock:
            self._write_yaml(self.teams_file, {'teams': [t.to_row() for t in teams]})

    # -- tournaments -------------------------------------------------------

    def list_tournaments(self) -> List[Tournament]:
        tournaments = []
        for filename in sorted(os.listdir(self.tournaments_dir)):
            if not filename.endswith('.yaml'):
                continue
            data = self._read_yaml(os.path.join(self.tournaments_dir, filename), None)
            if data and data.get('tournament'):
                tournaments.append(Tournament.from_row(data['tournament']))
        tournaments.sort(key=lambda t: str(t.created_at or ''), reverse=True)
        return tournaments

    def get_tournament(self, tournament_id) -> Tournament:
        return Tournament.from_row(self._load(tournament_id)['tournament'])

    def create_tournament(self, settings: Dict, created_by) -> Tournament:
        tournament = Tournament(
            id=_new_id(),
            name=settings['name'],
            preset=settings['preset'],
            team_pool=settings['team_pool'],
            default_participants=settings['default_participants'],
            group_count=settings.get('group_count'),
            status=TournamentStatus.DRAFT,
            created_by=created_by,
            created_at=_now(),
        )
        data = {
            'tournament': tournament.to_row(),
            'members': [{'user_id': created_by, 'role': 'host'}] if created_by else [],
            'participants': [],
            'groups': [],
            'standings': [],
            'matches': [],
        }
        with self._lock:
            self._save(tournament.id, data)
        logger.info(f'Created tournament {tournament.id} ({tournament.name})')
        return tournament

    def update_tournament(self, tournament_id, **changes) -> Tournament:
        with self._lock:
            data = self._load(tournament_id)
            row = data['tournament']
            for key in ('status', 'stage', 'name'):
                if key in changes:
                    value = changes[key]
                    row[key] = value.value if hasattr(value, 'value') else value
            self._save(tournament_id, data)
        return Tournament.from_row(row)

    # -- members -----------------------------------------------------------

    def list_members(self, tournament_id) -> List[Dict]:
        return list(self._load(tournament_id)['members'])

    def memberships_for(self, user_id) -> Dict:
        """Tournament id -> role for every tournament the user belongs to."""
        memberships = {}
        for tournament in self.list_tournaments():
            for member in self.list_members(tournament.id):
                if member.get('user_id') == user_id:
                    memberships[tournament.id] = member.get('role')
        return memberships

    def add_member(self, tournament_id, user_id, role: str = 'player'):
        with self._lock:
            data = self._load(tournament_id)
            if not any(m.get('user_id') == user_id for m in data['members']):
                data['members'].append({'user_id': user_id, 'role': role})
                self._save(tournament_id, data)

    # -- participants ------------------------------------------------------

    def list_participants(self, tournament_id) -> List[Participant]:
        return [Participant.from_row(row) for row in self._load(tournament_id)['participants']]

    def get_participant(self, tournament_id, participant_id) -> Participant:
        for participant in self.list_participants(tournament_id):
            if participant.id == participant_id:
                return participant
        raise NotFound(f"Participant {participant_id} not found")

    def create_participant(self, tournament_id, display_name: str, user_id=None,
                           guest_id=None) -> Participant:
        participant = Participant(id=_new_id(), tournament_id=tournament_id, display_name=display_name,
                                  user_id=user_id, guest_id=guest_id, created_at=_now())
        with self._lock:
            data = self._load(tournament_id)
            slots = data['tournament'].get('default_participants', 0)
            if len(data['participants']) >= slots:
                raise StoreError("No empty slots available.", 'NO_EMPTY_SLOTS')
            if user_id is not None and any(p.get('user_id') == user_id for p in data['participants']):
                raise StoreError("That user is already a participant.", 'DUPLICATE_PARTICIPANT')
            data['participants'].append(participant.to_row())
            self._save(tournament_id, data)
        return participant

    def update_participant(self, tournament_id, participant_id, **changes) -> Participant:
        unknown = set(changes) - set(PARTICIPANT_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update participant fields: {sorted(unknown)}")
        with self._lock:
            data = self._load(tournament_id)
            for row in data['participants']:
                if row['id'] == participant_id:
                    row.update(changes)
                    self._save(tournament_id, data)
                    return Participant.from_row(row)
        raise NotFound(f"Participant {participant_id} not found")

    def remove_participant(self, tournament_id, participant_id):
        with self._lock:
            data = self._load(tournament_id)
            remaining = [row for row in data['participants'] if row['id'] != participant_id]
            if len(remaining) == len(data['participants']):
                raise NotFound(f"Participant {participant_id} not found")
            data['participants'] = remaining
            self._save(tournament_id, data)

    # -- groups and matches ------------------------------------------------

    def list_groups(self, tournament_id) -> List[Dict]:
        return list(self._load(tournament_id)['groups'])

    def list_group_standings(self, tournament_id) -> List[GroupStanding]:
        return [GroupStanding.from_row(row) for row in self._load(tournament_id)['standings']]

    def list_matches(self, tournament_id, stage=None) -> List[Match]:
        """Matches with joined results, ordered by round then creation time."""
        data = self._load(tournament_id)
        names = {p['id']: p.get('display_name') for p in data['participants']}
        matches = []
        for row in data['matches']:
            match = Match.from_row(row)
            if stage is not None and match.stage is not (stage if isinstance(stage, Stage) else Stage(stage)):
                continue
            match.home_participant_name = names.get(match.home_participant_id)
            match.away_participant_name = names.get(match.away_participant_id)
            matches.append(match)
        matches.sort(key=lambda m: (m.round, str(m.created_at or '')))
        return matches

    def import_rows(self, tournament_id, matches: List[Dict] = None, groups: List[Dict] = None,
                    standings: List[Dict] = None):
        """Replace match/group/standings rows with rows produced by the backend."""
        with self._lock:
            data = self._load(tournament_id)
            if matches is not None:
                data['matches'] = [Match.from_row(row).to_row() for row in matches]
            if groups is not None:
                data['groups'] = list(groups)
            if standings is not None:
                data['standings'] = list(standings)
            self._save(tournament_id, data)

    def _match_row(self, data: Dict, match_id) -> Dict:
        for row in data['matches']:
            if row['id'] == match_id:
                return row
        raise NotFound(f"Match {match_id} not found")

    def upsert_result(self, tournament_id, match_id, result: Dict) -> None:
        """Create or overwrite the unlocked result of a match (idempotent by match id)."""
        with self._lock:
            data = self._load(tournament_id)
            row = self._match_row(data, match_id)
            existing = row.get('result') or {}
            if existing.get('locked'):
                raise StoreError("Result is locked.", 'RESULT_LOCKED')
            row['result'] = {**{key: result.get(key) for key in RESULT_FIELDS}, 'locked': False}
            self._save(tournament_id, data)

    def lock_result(self, tournament_id, match_id) -> None:
        with self._lock:
            data = self._load(tournament_id)
            row = self._match_row(data, match_id)
            result = row.get('result')
            if not result:
                raise StoreError("Save a result before locking it.", 'NO_RESULT')
            if result.get('locked'):
                raise StoreError("Result is already locked.", 'RESULT_LOCKED')
            result['locked'] = True
            self._save(tournament_id, data)
        logger.info(f'Locked result of match {match_id} in tournament {tournament_id}')

    def reopen_result(self, tournament_id, match_id) -> None:
        with self._lock:
            data = self._load(tournament_id)
            row = self._match_row(data, match_id)
            result = row.get('result')
            if not result or not result.get('locked'):
                raise StoreError("Result is not locked.", 'RESULT_NOT_LOCKED')
            result['locked'] = False
            self._save(tournament_id, data)
        logger.info(f'Re-opened result of match {match_id} in tournament {tournament_id}')
