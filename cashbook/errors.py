"""Domain errors raised by the service modules.

Each class carries the HTTP status the API answers with; ``main`` registers a
single handler that turns any of them into ``{"detail": message}``.
"""


class CashbookError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(CashbookError):
    status_code = 404


class Unauthorized(CashbookError):
    status_code = 401


class Forbidden(CashbookError):
    status_code = 403


class ValidationError(CashbookError):
    status_code = 400


class ConflictError(CashbookError):
    status_code = 409


class PreconditionFailed(CashbookError):
    status_code = 412
