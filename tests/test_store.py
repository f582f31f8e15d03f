"""
Tests for the YAML-backed store.
"""
import pytest
import sys
import os
import yaml

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from hockey.errors import NotFound, StoreError
from hockey.lifecycle import validate_tournament_settings
from hockey.models import Preset, Stage, TournamentStatus


@pytest.fixture
def tournament(store):
    settings = validate_tournament_settings('Winter Cup', 'playoffs_only', 4)
    return store.create_tournament(settings, 'host')


def _playoff_rows(tournament_id):
    return [
        {'id': 'final', 'tournament_id': tournament_id, 'stage': 'PLAYOFF', 'round': 2,
         'bracket_slot': 1, 'created_at': '2026-01-01T10:00:00'},
        {'id': 'sf1', 'tournament_id': tournament_id, 'stage': 'PLAYOFF', 'round': 1,
         'bracket_slot': 1, 'next_match_id': 'final', 'next_match_side': 'HOME',
         'home_participant_id': 'pa', 'away_participant_id': 'pb',
         'created_at': '2026-01-01T09:00:00'},
        {'id': 'g1', 'tournament_id': tournament_id, 'stage': 'GROUP', 'round': 1,
         'group_id': 'A', 'home_participant_id': 'pa', 'away_participant_id': 'pb',
         'created_at': '2026-01-01T08:00:00'},
    ]


class TestTournaments:
    """Tests for tournament rows."""

    def test_create_and_get(self, store, tournament):
        loaded = store.get_tournament(tournament.id)
        assert loaded.name == 'Winter Cup'
        assert loaded.preset is Preset.PLAYOFFS_ONLY
        assert loaded.status is TournamentStatus.DRAFT
        assert store.list_members(tournament.id) == [{'user_id': 'host', 'role': 'host'}]

    def test_file_layout(self, store, tournament, tmp_path):
        path = tmp_path / 'tournaments' / f'{tournament.id}.yaml'
        data = yaml.safe_load(path.read_text())
        assert data['tournament']['preset_id'] == 'playoffs_only'
        assert data['participants'] == []

    def test_missing_tournament(self, store):
        with pytest.raises(NotFound):
            store.get_tournament('nope')

    def test_list_and_update(self, store, tournament):
        assert [t.id for t in store.list_tournaments()] == [tournament.id]
        updated = store.update_tournament(tournament.id, status=TournamentStatus.ONGOING,
                                          stage=Stage.PLAYOFF)
        assert updated.status is TournamentStatus.ONGOING
        assert store.get_tournament(tournament.id).stage is Stage.PLAYOFF

    def test_memberships(self, store, tournament):
        store.add_member(tournament.id, 'alice')
        store.add_member(tournament.id, 'alice', 'host')
        assert store.memberships_for('alice') == {tournament.id: 'player'}
        assert store.memberships_for('host') == {tournament.id: 'host'}

    def test_corrupt_file_is_skipped(self, store, tournament, tmp_path):
        (tmp_path / 'tournaments' / 'broken.yaml').write_text('tournament: [unclosed')
        assert [t.id for t in store.list_tournaments()] == [tournament.id]


class TestUsersAndTeams:
    """Tests for the shared registries."""

    def test_get_user_case_insensitive(self, store):
        assert store.get_user('ROOT')['role'] == 'admin'
        assert store.get_user('nobody') is None

    def test_teams_have_tiers(self, store):
        teams = store.list_teams('NHL')
        assert len(teams) == 16
        assert teams[0].code == 'COL'
        assert teams[0].tier == 'Top 5'
        assert store.list_teams('INTL') == []


class TestParticipants:
    """Tests for participant rows."""

    def test_create_update_remove(self, store, tournament):
        p = store.create_participant(tournament.id, 'Alice', user_id='alice')
        store.update_participant(tournament.id, p.id, team_id=3, locked=True)
        loaded = store.get_participant(tournament.id, p.id)
        assert loaded.team_id == 3
        assert loaded.locked
        store.remove_participant(tournament.id, p.id)
        assert store.list_participants(tournament.id) == []

    def test_slots_limited(self, store, tournament):
        for i in range(4):
            store.create_participant(tournament.id, f'Guest {i}', guest_id=f'g{i}')
        with pytest.raises(StoreError) as exc_info:
            store.create_participant(tournament.id, 'One too many', guest_id='g9')
        assert exc_info.value.code == 'NO_EMPTY_SLOTS'

    def test_duplicate_user(self, store, tournament):
        store.create_participant(tournament.id, 'Alice', user_id='alice')
        with pytest.raises(StoreError) as exc_info:
            store.create_participant(tournament.id, 'Alice again', user_id='alice')
        assert exc_info.value.code == 'DUPLICATE_PARTICIPANT'

    def test_unknown_field_rejected(self, store, tournament):
        p = store.create_participant(tournament.id, 'Alice', user_id='alice')
        with pytest.raises(ValueError):
            store.update_participant(tournament.id, p.id, user_id='bob')

    def test_missing_participant(self, store, tournament):
        with pytest.raises(NotFound):
            store.remove_participant(tournament.id, 'ghost')
        with pytest.raises(NotFound):
            store.update_participant(tournament.id, 'ghost', locked=True)


class TestMatchesAndResults:
    """Tests for match rows and result lock semantics."""

    def test_list_matches_ordered_and_filtered(self, store, tournament):
        store.import_rows(tournament.id, matches=_playoff_rows(tournament.id))
        assert [m.id for m in store.list_matches(tournament.id)] == ['g1', 'sf1', 'final']
        assert [m.id for m in store.list_matches(tournament.id, Stage.PLAYOFF)] == ['sf1', 'final']
        assert [m.id for m in store.list_matches(tournament.id, 'GROUP')] == ['g1']

    def test_names_joined(self, store, tournament):
        p = store.create_participant(tournament.id, 'Alice', user_id='alice')
        rows = _playoff_rows(tournament.id)
        rows[1]['home_participant_id'] = p.id
        store.import_rows(tournament.id, matches=rows)
        sf1 = next(m for m in store.list_matches(tournament.id) if m.id == 'sf1')
        assert sf1.home_participant_name == 'Alice'

    def test_upsert_is_idempotent(self, store, tournament):
        store.import_rows(tournament.id, matches=_playoff_rows(tournament.id))
        result = {'home_score': 3, 'away_score': 1, 'home_shots': 20, 'away_shots': 18,
                  'decision': 'R'}
        store.upsert_result(tournament.id, 'sf1', result)
        store.upsert_result(tournament.id, 'sf1', result)
        sf1 = next(m for m in store.list_matches(tournament.id) if m.id == 'sf1')
        assert sf1.result.home_score == 3
        assert not sf1.result.locked

    def test_lock_requires_result(self, store, tournament):
        store.import_rows(tournament.id, matches=_playoff_rows(tournament.id))
        with pytest.raises(StoreError) as exc_info:
            store.lock_result(tournament.id, 'sf1')
        assert exc_info.value.code == 'NO_RESULT'

    def test_locked_result_rejects_upsert_until_reopened(self, store, tournament):
        store.import_rows(tournament.id, matches=_playoff_rows(tournament.id))
        result = {'home_score': 3, 'away_score': 1, 'home_shots': 20, 'away_shots': 18,
                  'decision': 'OT'}
        store.upsert_result(tournament.id, 'sf1', result)
        store.lock_result(tournament.id, 'sf1')
        with pytest.raises(StoreError) as exc_info:
            store.upsert_result(tournament.id, 'sf1', result)
        assert exc_info.value.code == 'RESULT_LOCKED'
        with pytest.raises(StoreError):
            store.lock_result(tournament.id, 'sf1')

        store.reopen_result(tournament.id, 'sf1')
        with pytest.raises(StoreError) as exc_info:
            store.reopen_result(tournament.id, 'sf1')
        assert exc_info.value.code == 'RESULT_NOT_LOCKED'
        store.upsert_result(tournament.id, 'sf1', dict(result, home_score=4))

    def test_unknown_match(self, store, tournament):
        with pytest.raises(NotFound):
            store.lock_result(tournament.id, 'ghost')

    def test_group_standings_rows(self, store, tournament):
        store.import_rows(tournament.id, groups=[{'id': 'A', 'code': 'A'}],
                          standings=[{'group_id': 'A', 'participant_id': 'pa', 'points': 3}])
        assert store.list_groups(tournament.id) == [{'id': 'A', 'code': 'A'}]
        assert store.list_group_standings(tournament.id)[0].points == 3
