"""
Shared pytest fixtures for hockey tournament tests.

Running tests:
    pytest tests/
"""
import pytest
import sys
import os

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from hockey.models import Team
from hockey.store import YamlStore


NHL_TEAMS = [
    ('COL', 92), ('EDM', 91), ('FLA', 90), ('DAL', 89), ('NYR', 88), ('VGK', 87),
    ('CAR', 86), ('TOR', 85), ('WPG', 84), ('BOS', 83), ('TBL', 82), ('LAK', 81),
    ('NJD', 80), ('MIN', 79), ('SEA', 78), ('OTT', 77),
]


@pytest.fixture
def sample_teams():
    """Sixteen NHL teams with descending overall ratings."""
    return [Team(id=index + 1, code=code, pool='NHL', overall=overall)
            for index, (code, overall) in enumerate(NHL_TEAMS)]


@pytest.fixture
def store(tmp_path, sample_teams):
    """YAML store in a temp directory with teams and users seeded."""
    store = YamlStore(str(tmp_path))
    store.save_teams(sample_teams)
    store.save_users([
        {'username': 'host', 'role': 'user', 'created': '2026-01-01'},
        {'username': 'alice', 'role': 'user', 'created': '2026-01-01'},
        {'username': 'bob', 'role': 'user', 'created': '2026-01-01'},
        {'username': 'root', 'role': 'admin', 'created': '2026-01-01'},
    ])
    return store


@pytest.fixture
def temp_data_dir(tmp_path, monkeypatch, store):
    """Point the Flask app at the seeded temp data directory, without a backend."""
    import app as app_module
    monkeypatch.setattr(app_module, 'DATA_DIR', str(tmp_path))
    monkeypatch.setattr(app_module, 'BACKEND_URL', None)
    return str(tmp_path)


@pytest.fixture
def client(temp_data_dir):
    """Create a test client signed in as the host user."""
    from app import app
    app.config['TESTING'] = True
    with app.test_client() as client:
        with client.session_transaction() as sess:
            sess['user'] = 'host'
        yield client


@pytest.fixture
def anon_client(temp_data_dir):
    """Create a test client without a signed-in user."""
    from app import app
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client
