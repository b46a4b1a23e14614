"""Application errors raised by services and rendered by the API.

Services raise these instead of `HTTPException` so they stay usable from
scripts and tests; `main` turns them into the JSON error envelope.
"""


class AppError(Exception):
    """An operational error with a client-facing message and HTTP status."""
    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    @property
    def status(self) -> str:
        return "fail" if self.status_code < 500 else "error"


class NotFoundError(AppError):
    status_code = 404


class ForbiddenError(AppError):
    status_code = 403


class AlreadySubmittedError(AppError):
    """The access token has already been used for a submission."""
    status_code = 409

    def __init__(self, message: str = "Feedback already submitted for this access token."):
        super().__init__(message)


class RequestValidationFailed(AppError):
    status_code = 400


class InternalError(AppError):
    """Data integrity or storage failure; details stay in the server log."""
    status_code = 500

    def __init__(self, message: str = "Internal server error."):
        super().__init__(message)
