"""
Exceptions raised by the tournament service and its collaborators.

Each error carries an HTTP status so the web layer can map it without a
lookup table of its own.
"""


class HockeyError(Exception):
    status_code = 400
    code = 'ERROR'

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {'error': self.message, 'code': self.code}


class ResultValidationError(HockeyError):
    """A submitted result failed validation; nothing was written."""
    code = 'INVALID_RESULT'


class SettingsError(HockeyError):
    code = 'INVALID_SETTINGS'


class PermissionDenied(HockeyError):
    status_code = 403
    code = 'FORBIDDEN'


class NotFound(HockeyError):
    status_code = 404
    code = 'NOT_FOUND'


class StoreError(HockeyError):
    """The data store rejected or failed a write."""
    status_code = 409
    code = 'STORE_ERROR'


class RemoteError(StoreError):
    """A remote procedure call failed or returned an error status."""
    status_code = 502
    code = 'REMOTE_ERROR'


class BackendUnavailable(RemoteError):
    """No backend is configured for the remote procedures."""
    status_code = 503
    code = 'NO_BACKEND'
