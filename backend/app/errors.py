"""Error taxonomy for the verification pipeline.

Every error the API surfaces derives from VerificationError and carries the
HTTP status and machine-readable code it renders as. Services raise these;
routes let them propagate to the handler registered in app.main.
"""


class VerificationError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, details: list | dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class RequestValidationFailed(VerificationError):
    status_code = 400
    code = "VALIDATION_ERROR"


class AuthenticationRequired(VerificationError):
    status_code = 401
    code = "UNAUTHORIZED"


class PermissionDenied(VerificationError):
    status_code = 403
    code = "FORBIDDEN"


class CaseNotFound(VerificationError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, case_id: str):
        super().__init__("Verification case not found")
        self.case_id = case_id


class InvalidStatusTransition(VerificationError):
    status_code = 409
    code = "INVALID_STATUS"


class IdempotencyConflictError(VerificationError):
    """Insert-if-absent lost the race; callers resolve it by re-reading."""

    status_code = 409
    code = "IDEMPOTENCY_CONFLICT"

    def __init__(self, key: str):
        super().__init__(f"Idempotency key already exists: {key}")
        self.key = key


class ConditionalCheckFailed(Exception):
    """A compare-and-set write matched no row."""


# Exception class names (ours or the DB driver's) worth retrying
TRANSIENT_ERROR_NAMES = frozenset({
    "OperationalError",
    "DisconnectionError",
    "TimeoutError",
    "TimeoutException",
    "ConnectionDoesNotExistError",
    "SerializationError",
    "DeadlockDetectedError",
    "TooManyConnectionsError",
    "CannotConnectNowError",
    "QueryCanceledError",
})


def is_transient_storage_error(exc: BaseException) -> bool:
    if type(exc).__name__ in TRANSIENT_ERROR_NAMES:
        return True
    orig = getattr(exc, "orig", None)
    return orig is not None and type(orig).__name__ in TRANSIENT_ERROR_NAMES
