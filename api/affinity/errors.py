class AffinityError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 400
    code = "affinity_error"

    def __init__(self, message: str, *, code: str | None = None):
        self.message = message
        if code:
            self.code = code
        super().__init__(message)


class NotFoundError(AffinityError):
    status_code = 404
    code = "not_found"


class InvalidOperationError(AffinityError):
    status_code = 400
    code = "invalid_operation"


class PreconditionFailedError(AffinityError):
    status_code = 412
    code = "precondition_failed"
