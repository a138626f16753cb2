from datetime import datetime
from typing import Optional


class ProgramHubError(Exception):
    """Base class for errors raised by the service layer."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ProgramHubError):
    status_code = 400


class NotFoundError(ProgramHubError):
    status_code = 404


class RegistrationClosedError(ProgramHubError):
    """Registration refused because the program is closed or past its deadline."""

    status_code = 403

    def __init__(self, reason: str, deadline: Optional[datetime] = None):
        if reason == "deadline" and deadline is not None:
            message = f"Registration closed on {deadline.strftime('%d %b %Y, %H:%M')}"
        else:
            message = "Registration for this program is currently closed."
        super().__init__(message)
        self.reason = reason
        self.deadline = deadline


class AlreadyRegisteredError(ProgramHubError):
    status_code = 400

    def __init__(self, message: str = "You are already registered for this program!"):
        super().__init__(message)


class ConflictError(ProgramHubError):
    status_code = 409
