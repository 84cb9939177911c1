"""Error kinds raised by the availability engine.

Every rejected query or booking surfaces as one of these so callers can tell
"someone else just booked this time" apart from "system error".
"""


class SchedulingError(Exception):
    kind = 'scheduling_error'
    retryable = False

    def __init__(self, message: str, **context) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        return self.message


class InvalidRange(SchedulingError):
    kind = 'invalid_range'


class InvalidTemplate(SchedulingError):
    kind = 'invalid_template'


class SlotUnavailable(SchedulingError):
    kind = 'slot_unavailable'
    retryable = True


class LockTimeout(SlotUnavailable):
    kind = 'lock_timeout'


class UpstreamUnavailable(SchedulingError):
    kind = 'upstream_unavailable'


class AppointmentNotFound(SchedulingError):
    kind = 'appointment_not_found'


class InvalidStatusTransition(SchedulingError):
    kind = 'invalid_status_transition'
