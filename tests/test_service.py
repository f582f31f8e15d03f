"""
Tests for the tournament service: permissions, validation and derived views together.
"""
import pytest
import sys
import os
from unittest.mock import MagicMock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from hockey.errors import (BackendUnavailable, NotFound, PermissionDenied, ResultValidationError,
                           SettingsError, StoreError)
from hockey.lifecycle import GENERATE_PLAYOFF_BRACKET
from hockey.models import Stage, TournamentStatus
from hockey.permissions import SessionContext
from hockey.service import TournamentService

HOST = SessionContext('host')
ALICE = SessionContext('alice')
BOB = SessionContext('bob')
ANON = SessionContext()


def seed_bracket(store, tournament_id, pids):
    """Two semi-finals feeding a final, as the generation procedure would create them."""
    store.import_rows(tournament_id, matches=[
        {'id': 'sf1', 'stage': 'PLAYOFF', 'round': 1, 'bracket_slot': 1, 'next_match_id': 'final',
         'next_match_side': 'HOME', 'home_participant_id': pids[0], 'away_participant_id': pids[1],
         'created_at': '2026-01-01T09:00:00'},
        {'id': 'sf2', 'stage': 'PLAYOFF', 'round': 1, 'bracket_slot': 2, 'next_match_id': 'final',
         'next_match_side': 'AWAY', 'home_participant_id': pids[2], 'away_participant_id': pids[3],
         'created_at': '2026-01-01T09:01:00'},
        {'id': 'final', 'stage': 'PLAYOFF', 'round': 2, 'bracket_slot': 1,
         'created_at': '2026-01-01T09:02:00'},
    ])


def set_final(store, tournament_id, home, away):
    """Advance semi-final winners into the final, as the backend does after a lock."""
    with store._lock:
        data = store._load(tournament_id)
        for row in data['matches']:
            if row['id'] == 'final':
                row['home_participant_id'] = home
                row['away_participant_id'] = away
        store._save(tournament_id, data)


@pytest.fixture
def service(store):
    return TournamentService(store)


@pytest.fixture
def tournament_id(service):
    created = service.create_tournament(HOST, 'Winter Cup', 'playoffs_only', 4)
    return created['tournament']['id']


@pytest.fixture
def players(service, tournament_id):
    """Host, Alice, Bob and a guest, each locked in with a team."""
    host = service.add_participant(HOST, tournament_id, user_id='host', display_name='Hank')
    alice = service.add_participant(HOST, tournament_id, user_id='alice', display_name='Alice')
    bob = service.add_participant(HOST, tournament_id, user_id='bob', display_name='Bob')
    guest = service.add_participant(HOST, tournament_id, guest_name='Sam')
    for team_id, participant in enumerate([host, alice, bob, guest], start=1):
        service.assign_team(HOST, tournament_id, participant.id, team_id=team_id)
        service.lock_participant(HOST, tournament_id, participant.id)
    return [host, alice, bob, guest]


@pytest.fixture
def bracket(store, tournament_id, players):
    """Alice plays the host in sf1; Bob plays the guest in sf2."""
    pids = [players[1].id, players[0].id, players[2].id, players[3].id]
    seed_bracket(store, tournament_id, pids)
    return pids


RESULT = {'home_score': '3', 'away_score': '1', 'home_shots': '25', 'away_shots': '20', 'decision': 'R'}


class TestCreateTournament:
    """Tests for creating tournaments."""

    def test_requires_sign_in(self, service):
        with pytest.raises(PermissionDenied):
            service.create_tournament(ANON, 'Cup', 'playoffs_only', 4)

    def test_group_count_note(self, service):
        created = service.create_tournament(HOST, 'Cup', 'full_no_losers', 5, group_count=4)
        assert created['tournament']['group_count'] == 2
        assert created['note']

    def test_invalid_settings(self, service):
        with pytest.raises(SettingsError):
            service.create_tournament(HOST, 'Cup', 'playoffs_only', 30)


class TestParticipants:
    """Tests for adding and managing participants."""

    def test_host_and_guest_labels(self, service, tournament_id, players):
        names = [p.display_name for p in players]
        assert names[0] == 'Hank (Host)'
        assert names[3] == 'Sam (Guest)'
        assert players[3].is_guest

    def test_only_host_adds(self, service, tournament_id):
        with pytest.raises(PermissionDenied):
            service.add_participant(ALICE, tournament_id, guest_name='Sneaky')

    def test_guest_name_required(self, service, tournament_id):
        with pytest.raises(SettingsError):
            service.add_participant(HOST, tournament_id, guest_name='  ')

    def test_player_picks_own_team(self, service, tournament_id):
        alice = service.add_participant(HOST, tournament_id, user_id='alice', display_name='Alice')
        bob = service.add_participant(HOST, tournament_id, user_id='bob', display_name='Bob')
        assert service.assign_team(ALICE, tournament_id, alice.id, team_id='5').team_id == 5
        with pytest.raises(PermissionDenied):
            service.assign_team(ALICE, tournament_id, bob.id, team_id=6)
        with pytest.raises(SettingsError) as exc_info:
            service.assign_team(BOB, tournament_id, bob.id, team_id=5)
        assert exc_info.value.code == 'TEAM_TAKEN'
        with pytest.raises(SettingsError) as exc_info:
            service.assign_team(BOB, tournament_id, bob.id, team_id=999)
        assert exc_info.value.code == 'UNKNOWN_TEAM'

    def test_random_team_from_tier(self, service, tournament_id):
        alice = service.add_participant(HOST, tournament_id, user_id='alice', display_name='Alice')
        updated = service.assign_team(ALICE, tournament_id, alice.id, random_tier='Bottom Tier')
        assert updated.team_id in (14, 15, 16)

    def test_lock_needs_team(self, service, tournament_id):
        alice = service.add_participant(HOST, tournament_id, user_id='alice', display_name='Alice')
        with pytest.raises(SettingsError) as exc_info:
            service.lock_participant(ALICE, tournament_id, alice.id)
        assert exc_info.value.code == 'NO_TEAM'

    def test_locked_participant_needs_host_to_reopen(self, service, tournament_id, players):
        alice = players[1]
        with pytest.raises(PermissionDenied):
            service.assign_team(ALICE, tournament_id, alice.id, team_id=9)
        with pytest.raises(PermissionDenied):
            service.assign_team(HOST, tournament_id, alice.id, team_id=9)
        with pytest.raises(StoreError):
            service.lock_participant(ALICE, tournament_id, alice.id)
        with pytest.raises(PermissionDenied):
            service.unlock_participant(ALICE, tournament_id, alice.id)
        assert not service.unlock_participant(HOST, tournament_id, alice.id).locked
        assert service.assign_team(ALICE, tournament_id, alice.id, team_id=9).team_id == 9

    def test_clear_participant(self, service, store, tournament_id, players):
        with pytest.raises(PermissionDenied):
            service.clear_participant(BOB, tournament_id, players[3].id)
        service.clear_participant(HOST, tournament_id, players[3].id)
        assert len(store.list_participants(tournament_id)) == 3


class TestAdvance:
    """Tests for triggering generation procedures."""

    def test_nothing_to_do_before_everyone_is_ready(self, store, tournament_id):
        procedures = MagicMock()
        service = TournamentService(store, procedures)
        assert service.advance(HOST, tournament_id) is None
        procedures.call.assert_not_called()

    def test_requires_backend(self, service, tournament_id, players):
        with pytest.raises(BackendUnavailable) as exc_info:
            service.advance(HOST, tournament_id)
        assert exc_info.value.status_code == 503

    def test_only_host(self, store, tournament_id, players):
        with pytest.raises(PermissionDenied):
            TournamentService(store, MagicMock()).advance(ALICE, tournament_id)

    def test_triggers_playoff_generation(self, store, tournament_id, players):
        procedures = MagicMock()
        service = TournamentService(store, procedures)
        assert service.advance(HOST, tournament_id) == GENERATE_PLAYOFF_BRACKET
        procedures.call.assert_called_once_with(GENERATE_PLAYOFF_BRACKET, tournament_id)
        tournament = store.get_tournament(tournament_id)
        assert tournament.status is TournamentStatus.ONGOING
        assert tournament.stage is Stage.PLAYOFF


class TestResults:
    """Tests for entering, locking and re-opening results."""

    def test_invalid_result_writes_nothing(self, service, store, tournament_id, bracket):
        with pytest.raises(ResultValidationError) as exc_info:
            service.save_result(ALICE, tournament_id, 'sf1', dict(RESULT, away_score='3'))
        assert exc_info.value.code == 'TIE_NOT_ALLOWED'
        sf1 = next(m for m in store.list_matches(tournament_id) if m.id == 'sf1')
        assert sf1.result is None

    def test_player_enters_own_match_only(self, service, tournament_id, bracket):
        parsed = service.save_result(ALICE, tournament_id, 'sf1', RESULT)
        assert parsed.home_score == 3
        with pytest.raises(PermissionDenied):
            service.save_result(ALICE, tournament_id, 'sf2', RESULT)

    def test_match_not_ready(self, service, tournament_id, bracket):
        with pytest.raises(ResultValidationError) as exc_info:
            service.save_result(HOST, tournament_id, 'final', RESULT)
        assert exc_info.value.code == 'MATCH_NOT_READY'

    def test_unknown_match(self, service, tournament_id, bracket):
        with pytest.raises(NotFound):
            service.save_result(HOST, tournament_id, 'nope', RESULT)

    def test_lock_freezes_result(self, service, tournament_id, bracket):
        with pytest.raises(StoreError) as exc_info:
            service.lock_result(ALICE, tournament_id, 'sf1')
        assert exc_info.value.code == 'NO_RESULT'
        service.save_result(ALICE, tournament_id, 'sf1', RESULT)
        service.lock_result(ALICE, tournament_id, 'sf1')
        with pytest.raises(PermissionDenied):
            service.save_result(ALICE, tournament_id, 'sf1', RESULT)
        with pytest.raises(PermissionDenied):
            service.reopen_result(ALICE, tournament_id, 'sf1')
        service.reopen_result(HOST, tournament_id, 'sf1')
        service.save_result(ALICE, tournament_id, 'sf1', dict(RESULT, home_score='4'))

    def test_full_bracket_closes_and_places(self, service, store, tournament_id, bracket, players):
        alice, host, bob, guest = bracket
        service.save_result(ALICE, tournament_id, 'sf1', RESULT)
        service.lock_result(ALICE, tournament_id, 'sf1')
        service.save_result(BOB, tournament_id, 'sf2', {'home_score': 5, 'away_score': 0,
                                                        'home_shots': 30, 'away_shots': 10})
        service.lock_result(BOB, tournament_id, 'sf2')
        set_final(store, tournament_id, alice, bob)

        view = service.load_view(tournament_id, ALICE)
        assert view['phase'] == 'playoff'
        assert view['placements']['ranks'] == {}

        service.save_result(BOB, tournament_id, 'final', {'home_score': 1, 'away_score': 2,
                                                          'home_shots': 20, 'away_shots': 22,
                                                          'decision': 'OT'})
        service.lock_result(HOST, tournament_id, 'final')
        assert store.get_tournament(tournament_id).status is TournamentStatus.CLOSED

        view = service.load_view(tournament_id, ALICE)
        assert view['phase'] == 'complete'
        assert view['placements']['ranks'] == {bob: 1, alice: 2, host: 3, guest: 4}
        assert view['placements']['medals'][bob] == 'gold'
        assert [row['participant_id'] for row in view['final_standings']] == [bob, alice, host, guest]
        assert view['next_procedure'] is None

        # the final is locked, so the semi-finals can no longer be re-opened
        with pytest.raises(PermissionDenied):
            service.reopen_result(HOST, tournament_id, 'sf1')
        service.reopen_result(HOST, tournament_id, 'final')
        assert store.get_tournament(tournament_id).status is TournamentStatus.ONGOING


class TestViews:
    """Tests for the recomputed views."""

    def test_load_view_shape(self, service, tournament_id, bracket):
        view = service.load_view(tournament_id, ALICE)
        assert view['tournament']['name'] == 'Winter Cup'
        assert view['phase'] == 'playoff'
        assert not view['is_host_or_admin']
        assert view['open_slots'] == 0
        assert view['participants'][0]['display_name'] == 'Hank (Host)'
        assert view['participants'][0]['team']['code'] == 'COL'
        assert [m['id'] for m in view['playoff_matches']] == ['sf1', 'sf2', 'final']
        sf1 = view['playoff_matches'][0]
        assert sf1['state'] == 'playable'
        assert sf1['can_edit']
        assert not view['playoff_matches'][1]['can_edit']
        assert view['next_procedure'] == 'ensure_playoff_bracket'
        assert view['bracket_violations'] == []

    def test_bracket_view(self, service, tournament_id, bracket):
        rounds = service.bracket_view(tournament_id)['winners']
        assert [r['name'] for r in rounds] == ['Semi-finals', 'Final']
        final = rounds[1]['slots'][0]
        assert final['home_label'] == 'TBD'
        assert final['match']['id'] == 'final'
        assert service.bracket_view(tournament_id)['losers'] == []

    def test_standings_view_empty_without_groups(self, service, tournament_id):
        assert service.standings_view(tournament_id) == {'groups': {}, 'overall': {}}
