"""Error taxonomy shared by services, blueprints and socket handlers.

Each error carries the HTTP status the thin routing layer answers with, so
services can raise without knowing about Flask responses.
"""


class GameError(Exception):
    status_code = 500

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__ or self.__class__.__name__)

    @property
    def message(self):
        return str(self)


class ValidationError(GameError):
    """Invalid request"""
    status_code = 400


class OutOfRange(ValidationError):
    """Valid position (1-7) is required"""


class Unauthorized(GameError):
    """Authentication required"""
    status_code = 401


class Forbidden(GameError):
    """Not allowed"""
    status_code = 403


class NotFound(GameError):
    """Not found"""
    status_code = 404


class TeamNotFound(NotFound):
    """Team not found"""


class UnknownScenario(NotFound):
    """Scenario not found"""


class DecisionNotFound(NotFound):
    """Decision not found"""


class Conflict(GameError):
    """Conflicting state"""
    status_code = 409


class AlreadySubmitted(Conflict):
    """This scenario has already been completed"""


class TransientStoreError(GameError):
    """The database is busy, please retry"""
    status_code = 500
