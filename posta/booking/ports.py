import datetime as dt
from abc import ABC, abstractmethod
from typing import Protocol

from posta.domain.models import (
    Appointment,
    AppointmentRequest,
    AppointmentStats,
    AppointmentStatus,
    AppointmentUpdate,
)


class KeyValueStorage(Protocol):
    """String key-value surface the appointment store persists into."""

    def get(self, key: str) -> str | None:
        """Return the value stored under ``key``, or None."""
        ...

    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        ...

    def remove(self, key: str) -> None:
        """Delete ``key``.  No error if it is absent."""
        ...


class AppointmentRepository(Protocol):
    """Persistence contract for appointment records."""

    async def find(self, appointment_id: str) -> Appointment | None:
        ...

    async def find_all(self) -> list[Appointment]:
        ...

    async def find_by_patient(self, patient_id: str) -> list[Appointment]:
        ...

    async def find_by_doctor(self, doctor_id: str) -> list[Appointment]:
        ...

    async def find_overlapping(
        self,
        doctor_id: str,
        start: dt.datetime,
        end: dt.datetime,
        exclude_id: str | None = None,
    ) -> list[Appointment]:
        """Non-cancelled appointments of the doctor intersecting ``[start, end)``."""
        ...

    async def save(self, appointment: Appointment) -> Appointment:
        """Validate and persist an appointment, returning the stored copy."""
        ...

    async def delete(self, appointment_id: str) -> bool:
        """Remove an appointment.  Returns whether anything was removed."""
        ...


class AbstractAppointmentService(ABC):
    """Abstract base class for appointment lifecycle operations."""

    @abstractmethod
    async def find(self, appointment_id: str) -> Appointment | None:
        """Look up an appointment by ID.

        Returns:
            The appointment, or None if no appointment has that ID.
        """

    @abstractmethod
    async def list_appointments(self) -> list[Appointment]:
        """Return every stored appointment in insertion order."""

    @abstractmethod
    async def find_by_patient(self, patient_id: str) -> list[Appointment]:
        """Return all appointments of a patient."""

    @abstractmethod
    async def find_by_doctor(self, doctor_id: str) -> list[Appointment]:
        """Return all appointments of a doctor."""

    @abstractmethod
    async def check_availability(
        self,
        doctor_id: str,
        start_time: dt.datetime | str,
        end_time: dt.datetime | str,
        exclude_id: str | None = None,
    ) -> bool:
        """Check whether a doctor is free for the given window.

        Args:
            doctor_id: The doctor's ID.
            start_time: Window start, as a datetime or ISO 8601 string.
            end_time: Window end, as a datetime or ISO 8601 string.
            exclude_id: Appointment to ignore, typically the one being moved.

        Returns:
            True if no non-cancelled appointment of the doctor intersects
            the half-open window.

        Raises:
            InvalidRangeError: If a bound cannot be parsed or the window is empty.
        """

    @abstractmethod
    async def create_appointment(self, request: AppointmentRequest) -> Appointment:
        """Book a new appointment.

        Args:
            request: The appointment details.

        Returns:
            The stored appointment with its assigned ID, in ``scheduled`` status.

        Raises:
            ValidationError: If required fields are blank or the start is in the past.
            InvalidRangeError: If the end is not after the start.
            DoctorUnavailableError: If the doctor is booked in that window.
        """

    @abstractmethod
    async def update_appointment(
        self, appointment_id: str, update: AppointmentUpdate
    ) -> Appointment:
        """Change the doctor, time window or notes of a scheduled appointment.

        Raises:
            NotFoundError: If the appointment does not exist.
            AlreadyCancelledError: If the appointment is cancelled.
            AppointmentClosedError: If the appointment is completed or a no-show.
            ValidationError: If the new window is invalid or in the past.
            DoctorUnavailableError: If the new window conflicts with another booking.
        """

    @abstractmethod
    async def cancel_appointment(
        self, appointment_id: str, reason: str | None = None
    ) -> Appointment:
        """Cancel an upcoming appointment.

        Raises:
            NotFoundError: If the appointment does not exist.
            AlreadyCancelledError: If it is already cancelled.
            PastAppointmentError: If it has already started.
            AppointmentClosedError: If it is completed or a no-show.
        """

    @abstractmethod
    async def update_status(
        self, appointment_id: str, status: AppointmentStatus
    ) -> Appointment:
        """Move a scheduled appointment to another status.

        Setting ``cancelled`` goes through ``cancel_appointment``.

        Raises:
            NotFoundError: If the appointment does not exist.
            AlreadyCancelledError: If it is already cancelled.
            AppointmentClosedError: If it is completed or a no-show.
        """

    @abstractmethod
    async def delete_appointment(self, appointment_id: str) -> bool:
        """Remove an appointment.  Returns whether one was removed."""

    @abstractmethod
    async def get_doctor_schedule(
        self, doctor_id: str, start: dt.datetime, end: dt.datetime
    ) -> list[Appointment]:
        """Non-cancelled appointments of a doctor starting within ``[start, end]``."""

    @abstractmethod
    async def get_patient_appointments(
        self,
        patient_id: str,
        *,
        status: AppointmentStatus | None = None,
        start: dt.datetime | None = None,
        end: dt.datetime | None = None,
    ) -> list[Appointment]:
        """A patient's appointments, newest first, optionally filtered."""

    @abstractmethod
    async def get_appointment_stats(
        self,
        *,
        start: dt.datetime | None = None,
        end: dt.datetime | None = None,
        doctor_id: str | None = None,
    ) -> AppointmentStats:
        """Aggregate counts over the matching appointments."""
