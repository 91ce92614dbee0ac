"""
Domain errors and their HTTP status codes
"""


class PetPulseError(Exception):
    """Base class for errors that are reported to the client"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PetPulseError):
    status_code = 400


class ConflictError(PetPulseError):
    status_code = 409


class NotFoundError(PetPulseError):
    status_code = 404


class InvalidTransitionError(PetPulseError):
    status_code = 400


class UpstreamDeliveryError(PetPulseError):
    """Email/SMS/Telegram delivery failed; logged, never sent to the client"""
    status_code = 502


class InvalidArgument(ValueError):
    pass
