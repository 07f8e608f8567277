import datetime as dt


class BookingError(Exception):
    """Base exception for all booking-related errors."""


class ValidationError(BookingError):
    """Raised when an appointment or request has missing or malformed fields."""

    def __init__(self, errors: list[str] | str) -> None:
        self.errors = [errors] if isinstance(errors, str) else list(errors)
        super().__init__(f"Validation failed: {'; '.join(self.errors)}")


class InvalidRangeError(ValidationError):
    """Raised when a time range is unparseable or does not end after it starts."""


class DoctorUnavailableError(BookingError):
    """Raised when the doctor already has an appointment in the requested window."""

    def __init__(self, doctor_id: str, start_time: dt.datetime, end_time: dt.datetime) -> None:
        self.doctor_id = doctor_id
        self.start_time = start_time
        self.end_time = end_time
        super().__init__(
            f"Doctor {doctor_id} is not available between "
            f"{start_time.isoformat()} and {end_time.isoformat()}"
        )


class NotFoundError(BookingError):
    """Raised when no appointment exists with the given ID."""

    def __init__(self, appointment_id: str) -> None:
        self.appointment_id = appointment_id
        super().__init__(f"Appointment not found: {appointment_id}")


class AlreadyCancelledError(BookingError):
    """Raised when acting on an appointment that has already been cancelled."""

    def __init__(self, appointment_id: str) -> None:
        self.appointment_id = appointment_id
        super().__init__(f"Appointment {appointment_id} is already cancelled")


class PastAppointmentError(BookingError):
    """Raised when cancelling an appointment whose start time has passed."""

    def __init__(self, appointment_id: str) -> None:
        self.appointment_id = appointment_id
        super().__init__(f"Appointment {appointment_id} has already started and cannot be cancelled")


class AppointmentClosedError(BookingError):
    """Raised when changing an appointment that is completed or marked no-show."""

    def __init__(self, appointment_id: str, status: str) -> None:
        self.appointment_id = appointment_id
        self.status = status
        super().__init__(f"Appointment {appointment_id} is {status} and can no longer be changed")


class StorageError(BookingError):
    """Raised when the storage backend fails or holds unreadable data."""
