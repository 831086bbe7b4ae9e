class TaskStakeError(Exception):
    """Base error; carries the HTTP status the API layer answers with."""

    status_code = 500

    def __init__(self, message, payload=None):
        super().__init__(message)
        self.message = message
        self.payload = payload or {}

    def to_dict(self):
        body = dict(self.payload)
        body['error'] = self.message
        return body


class ValidationError(TaskStakeError):
    status_code = 400


class Forbidden(TaskStakeError):
    status_code = 403


class NotFound(TaskStakeError):
    status_code = 404


class Conflict(TaskStakeError):
    status_code = 409


class ExternalServiceError(TaskStakeError):
    """Blob store, ledger or database failure."""

    status_code = 500
