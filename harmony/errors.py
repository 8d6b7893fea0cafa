"""Exception taxonomy shared by frontends, records, the dispatcher and callbacks."""


class HarmonyError(Exception):
    """Base class for errors that map onto an HTTP status code."""

    status_code = 500
    code = "InternalServerError"

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(HarmonyError):
    """Client-supplied input has an invalid shape or value."""

    status_code = 400
    code = "InvalidParameterValue"

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = list(errors) if errors else [message]


class NotFoundError(HarmonyError):
    status_code = 404
    code = "NotFound"


class DispatchError(HarmonyError):
    """No backend can serve the operation the way it was requested."""

    NO_SUPPORTING_BACKEND = "no_supporting_backend"
    SYNCHRONOUS_REQUIRED = "synchronous_required"

    code = "DispatchError"

    def __init__(self, message: str, reason: str):
        status_code = 404 if reason == self.NO_SUPPORTING_BACKEND else 400
        super().__init__(message, status_code=status_code)
        self.reason = reason


class CorrelationError(HarmonyError):
    """A backend called back on a token that is unknown or already retired.

    ``consumed`` is True when the token was bound earlier and has since been
    unbound, False when it was never issued by this process.
    """

    code = "CallbackNotFound"

    def __init__(self, token: str, *, consumed: bool):
        state = "already consumed" if consumed else "not found"
        super().__init__(f"Could not find response callback for token {token}: {state}")
        self.token = token
        self.consumed = consumed


class ConfigurationError(HarmonyError):
    code = "ConfigurationError"


class BackendError(HarmonyError):
    """Invoking a backend service failed before it could produce a result."""

    status_code = 502
    code = "BackendError"
