"""Error kinds raised by the scheduling engine.

Routes translate these into HTTP responses; nothing below the route layer
knows about status codes except through `status_code`.
"""


class SchedulingError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(SchedulingError):
    status_code = 404


class Forbidden(SchedulingError):
    status_code = 403


class SlotUnavailable(SchedulingError):
    status_code = 409


class InvalidTemporal(SchedulingError):
    status_code = 400


class ValidationFailed(SchedulingError):
    status_code = 400


class InvalidTransition(ValidationFailed):
    """The appointment's current status does not allow the requested change."""

    status_code = 409


class DeliveryFailed(SchedulingError):
    """Raised by notifiers. The engine logs it and never lets it escape."""

    status_code = 502
