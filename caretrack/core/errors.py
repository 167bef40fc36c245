"""Domain errors raised by the competency engine.

Each carries a message that is safe to show to the person who made the
request; the HTTP layer maps the class to a status code.
"""


class CompetencyError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(CompetencyError):
    status_code = 404


class NotLinkedError(CompetencyError):
    status_code = 404


class InvalidInputError(CompetencyError):
    status_code = 400


class AlreadyResolvedError(CompetencyError):
    status_code = 409


class ConfirmationExpiredError(CompetencyError):
    status_code = 410


class ConflictError(CompetencyError):
    status_code = 409
