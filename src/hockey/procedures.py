"""
Client for the backend's bracket generation procedures.

The procedures create group and playoff match rows on the backend; the
client only triggers them and reports success or failure. Calls are never
retried here.
"""
import logging

import requests

from .errors import RemoteError
from .lifecycle import ENSURE_PLAYOFF_BRACKET, GENERATE_GROUP_STAGE, GENERATE_PLAYOFF_BRACKET

logger = logging.getLogger(__name__)

PROCEDURES = {GENERATE_GROUP_STAGE, GENERATE_PLAYOFF_BRACKET, ENSURE_PLAYOFF_BRACKET}


class ProcedureClient:
    def __init__(self, base_url: str, api_key: str = None, timeout: float = 30, session=None):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self.session = session if session is not None else requests.Session()

    def _headers(self) -> dict:
        headers = {'Content-Type': 'application/json'}
        if self.api_key:
            headers['apikey'] = self.api_key
            headers['Authorization'] = f'Bearer {self.api_key}'
        return headers

    def call(self, name: str, tournament_id) -> None:
        """Run procedure ``name`` for a tournament. Raises RemoteError on any failure."""
        if name not in PROCEDURES:
            raise ValueError(f"Unknown procedure: {name}")
        url = f"{self.base_url}/rpc/{name}"
        try:
            response = self.session.post(url, json={'p_tournament_id': tournament_id},
                                         headers=self._headers(), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.warning(f'Procedure {name} for tournament {tournament_id} failed: {e}')
            raise RemoteError(f"Could not reach the backend: {e}") from e

        if response.status_code >= 400:
            message = _error_message(response)
            logger.warning(f'Procedure {name} for tournament {tournament_id} returned '
                           f'{response.status_code}: {message}')
            raise RemoteError(message)
        logger.info(f'Procedure {name} completed for tournament {tournament_id}')

    def generate_group_stage(self, tournament_id) -> None:
        self.call(GENERATE_GROUP_STAGE, tournament_id)

    def generate_playoff_bracket(self, tournament_id) -> None:
        self.call(GENERATE_PLAYOFF_BRACKET, tournament_id)

    def ensure_playoff_bracket(self, tournament_id) -> None:
        self.call(ENSURE_PLAYOFF_BRACKET, tournament_id)


def _error_message(response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get('message'):
        return body['message']
    return f"Backend returned HTTP {response.status_code}"
