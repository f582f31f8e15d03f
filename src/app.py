"""
Flask web application for Hockey Tournament Manager.

A JSON API over the tournament service. Every request recomputes what it
shows from the stored rows; mutations are checked against the signed-in
user's permissions before anything is written.
"""
import os
from datetime import timedelta
from functools import wraps

from flask import Flask, g, jsonify, request, session

from hockey.errors import HockeyError, RemoteError
from hockey.permissions import SessionContext
from hockey.procedures import ProcedureClient
from hockey.service import TournamentService
from hockey.store import YamlStore

app = Flask(__name__)


def _get_or_create_secret_key() -> bytes:
    """Get SECRET_KEY from env, or generate and persist to file."""
    env_key = os.environ.get('SECRET_KEY')
    if env_key:
        return env_key.encode() if isinstance(env_key, str) else env_key
    key_file = os.path.join(DATA_DIR, '.secret_key')
    if os.path.exists(key_file):
        with open(key_file, 'rb') as f:
            return f.read()
    key = os.urandom(24)
    os.makedirs(os.path.dirname(key_file), exist_ok=True)
    with open(key_file, 'wb') as f:
        f.write(key)
    return key


BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('HOCKEY_DATA_DIR', os.path.join(BASE_DIR, 'data'))

app.secret_key = _get_or_create_secret_key()
app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(days=3650)

# Remote generation procedures; advance is unavailable without a backend
BACKEND_URL = os.environ.get('HOCKEY_BACKEND_URL')
BACKEND_KEY = os.environ.get('HOCKEY_BACKEND_KEY')
BACKEND_TIMEOUT = float(os.environ.get('HOCKEY_BACKEND_TIMEOUT', '30'))


def get_store() -> YamlStore:
    return YamlStore(DATA_DIR)


def get_service() -> TournamentService:
    procedures = None
    if BACKEND_URL:
        procedures = ProcedureClient(BACKEND_URL, BACKEND_KEY, timeout=BACKEND_TIMEOUT)
    return TournamentService(get_store(), procedures)


def login_required(f):
    """Reject the request with 401 if no user is signed in."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'user' not in session:
            return jsonify({'error': 'Login required', 'code': 'UNAUTHENTICATED'}), 401
        return f(*args, **kwargs)
    return decorated_function


@app.before_request
def load_session_context():
    """Build g.session_ctx from the signed-in user, their site role and tournament memberships."""
    g.service = get_service()
    username = session.get('user')
    if not username:
        g.session_ctx = SessionContext()
        return
    store = g.service.store
    user = store.get_user(username) or {}
    g.session_ctx = SessionContext(
        user_id=username,
        role=user.get('role'),
        memberships=store.memberships_for(username),
    )


@app.errorhandler(HockeyError)
def handle_hockey_error(error):
    if isinstance(error, RemoteError):
        app.logger.warning(f'Remote call failed on {request.path}: {error.message}')
    return jsonify(error.to_dict()), error.status_code


def _payload() -> dict:
    """JSON body, or form fields when the client posted a form."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


# ============================================================================
# Tournaments
# ============================================================================

@app.route('/api/tournaments', methods=['GET'])
def api_list_tournaments():
    return jsonify({'tournaments': g.service.list_tournaments()})


@app.route('/api/tournaments', methods=['POST'])
@login_required
def api_create_tournament():
    data = _payload()
    created = g.service.create_tournament(
        g.session_ctx,
        name=data.get('name'),
        preset=data.get('preset'),
        default_participants=data.get('default_participants'),
        group_count=data.get('group_count'),
        team_pool=data.get('team_pool', 'NHL'),
    )
    app.logger.info(f"Tournament {created['tournament']['id']} created by {g.session_ctx.user_id}")
    return jsonify(created), 201


@app.route('/api/tournaments/<tid>', methods=['GET'])
def api_tournament(tid):
    return jsonify(g.service.load_view(tid, g.session_ctx))


@app.route('/api/tournaments/<tid>/bracket', methods=['GET'])
def api_bracket(tid):
    return jsonify(g.service.bracket_view(tid, g.session_ctx))


@app.route('/api/tournaments/<tid>/standings', methods=['GET'])
def api_standings(tid):
    return jsonify(g.service.standings_view(tid))


@app.route('/api/tournaments/<tid>/advance', methods=['POST'])
@login_required
def api_advance(tid):
    procedure = g.service.advance(g.session_ctx, tid)
    if procedure is None:
        return jsonify({'error': 'Nothing to generate yet', 'code': 'NOT_READY'}), 409
    app.logger.info(f'Procedure {procedure} triggered for tournament {tid}')
    return jsonify({'success': True, 'procedure': procedure})


# ============================================================================
# Participants
# ============================================================================

@app.route('/api/tournaments/<tid>/participants', methods=['POST'])
@login_required
def api_add_participant(tid):
    data = _payload()
    participant = g.service.add_participant(
        g.session_ctx, tid,
        user_id=data.get('user_id') or None,
        display_name=data.get('display_name'),
        guest_name=data.get('guest_name'),
    )
    return jsonify({'participant': participant.to_row()}), 201


@app.route('/api/tournaments/<tid>/participants/<pid>/team', methods=['POST'])
@login_required
def api_assign_team(tid, pid):
    data = _payload()
    participant = g.service.assign_team(g.session_ctx, tid, pid,
                                        team_id=data.get('team_id') or None,
                                        random_tier=data.get('random_tier') or None)
    return jsonify({'participant': participant.to_row()})


@app.route('/api/tournaments/<tid>/participants/<pid>/lock', methods=['POST'])
@login_required
def api_lock_participant(tid, pid):
    participant = g.service.lock_participant(g.session_ctx, tid, pid)
    return jsonify({'participant': participant.to_row()})


@app.route('/api/tournaments/<tid>/participants/<pid>/unlock', methods=['POST'])
@login_required
def api_unlock_participant(tid, pid):
    participant = g.service.unlock_participant(g.session_ctx, tid, pid)
    return jsonify({'participant': participant.to_row()})


@app.route('/api/tournaments/<tid>/participants/<pid>', methods=['DELETE'])
@login_required
def api_clear_participant(tid, pid):
    g.service.clear_participant(g.session_ctx, tid, pid)
    return jsonify({'success': True})


# ============================================================================
# Results
# ============================================================================

@app.route('/api/tournaments/<tid>/matches/<mid>/result', methods=['POST'])
@login_required
def api_save_result(tid, mid):
    parsed = g.service.save_result(g.session_ctx, tid, mid, _payload())
    return jsonify({'success': True, 'result': parsed.as_row()})


@app.route('/api/tournaments/<tid>/matches/<mid>/lock', methods=['POST'])
@login_required
def api_lock_result(tid, mid):
    g.service.lock_result(g.session_ctx, tid, mid)
    return jsonify({'success': True})


@app.route('/api/tournaments/<tid>/matches/<mid>/reopen', methods=['POST'])
@login_required
def api_reopen_result(tid, mid):
    g.service.reopen_result(g.session_ctx, tid, mid)
    app.logger.info(f'Result of match {mid} re-opened by {g.session_ctx.user_id}')
    return jsonify({'success': True})


if __name__ == '__main__':
    app.run(debug=True, port=5000)
