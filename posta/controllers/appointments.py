import contextlib
import datetime as dt
import re
from typing import Any, Iterator, Mapping

from loguru import logger

from posta.booking.adapters.datetime_helpers import parse_instant, resolve_timezone
from posta.booking.ports import AbstractAppointmentService
from posta.domain.exceptions import BookingError, InvalidRangeError, NotFoundError, ValidationError
from posta.domain.models import (
    Appointment,
    AppointmentRequest,
    AppointmentStatus,
    AppointmentUpdate,
)

FormData = Mapping[str, Any]


def _field(form: FormData, name: str) -> Any:
    """Look up a camelCase form field, falling back to its snake_case spelling."""
    if name in form:
        return form[name]
    return form.get(re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower())


def _text(value: object) -> str:
    return str(value).strip() if value is not None else ""


def _parse_iso_date(value: str, field_name: str) -> tuple[dt.date | None, str | None]:
    """Parse an ISO 8601 date string. Returns ``(date, None)`` or ``(None, error_msg)``."""
    try:
        return dt.date.fromisoformat(value), None
    except ValueError:
        return None, f"Invalid date format for '{field_name}': '{value}'. Expected YYYY-MM-DD."


def _parse_iso_time(value: str, field_name: str) -> tuple[dt.time | None, str | None]:
    """Parse an ISO 8601 time string. Returns ``(time, None)`` or ``(None, error_msg)``."""
    try:
        return dt.time.fromisoformat(value), None
    except ValueError:
        return None, f"Invalid time format for '{field_name}': '{value}'. Expected HH:MM."


def _parse_datetime(
    value: object, field_name: str, tz: dt.tzinfo
) -> tuple[dt.datetime | None, str | None]:
    parsed = parse_instant(value, tz)
    if parsed is None:
        return None, f"Invalid date and time for '{field_name}': '{value}'. Expected YYYY-MM-DDTHH:MM."
    return parsed, None


class AppointmentController:
    """Turns loosely-typed form data into appointment service calls.

    Forms may use camelCase (``patientId``) or snake_case (``patient_id``)
    keys.  A start is given either as ``startTime`` or as ``date`` plus
    ``time``; naive values are read in the clinic's timezone.  Errors are
    logged and re-raised unchanged, with messages meant for display.
    """

    def __init__(
        self,
        service: AbstractAppointmentService,
        *,
        clinic_timezone: str = "America/New_York",
        default_duration_minutes: int = 30,
    ) -> None:
        self._service = service
        self._clinic_tz = resolve_timezone(clinic_timezone)
        self._default_duration = dt.timedelta(minutes=default_duration_minutes)

    def validate_form(self, form: FormData) -> None:
        errors = []
        if not _text(_field(form, "patientId")):
            errors.append("Patient is required")
        if not _text(_field(form, "doctorId")):
            errors.append("Doctor is required")
        if not _text(_field(form, "startTime")) and not _text(_field(form, "date")):
            errors.append("Date is required")
        if errors:
            raise ValidationError(errors)

    def parse_request(self, form: FormData) -> AppointmentRequest:
        """Validate a booking form and convert it into an ``AppointmentRequest``."""
        self.validate_form(form)

        errors: list[str] = []
        start = self._parse_start(form, errors)
        end = self._parse_end(form, errors)
        if errors or start is None:
            raise ValidationError(errors)

        end = end or start + self._default_duration
        if end <= start:
            raise InvalidRangeError("End time must be after start time")

        return AppointmentRequest(
            patient_id=_text(_field(form, "patientId")),
            doctor_id=_text(_field(form, "doctorId")),
            start_time=start,
            end_time=end,
            notes=_text(_field(form, "notes")),
        )

    async def create_appointment(self, form: FormData) -> Appointment:
        with self._reporting("create_appointment"):
            request = self.parse_request(form)
            return await self._service.create_appointment(request)

    async def update_appointment(self, appointment_id: str, form: FormData) -> Appointment:
        """Reschedule or edit an appointment from a partial form.

        A new start without an end keeps the appointment's current duration.
        """
        with self._reporting("update_appointment"):
            errors: list[str] = []
            start = self._parse_start(form, errors)
            end = self._parse_end(form, errors)
            if errors:
                raise ValidationError(errors)

            if start is not None and end is None:
                current = await self._service.find(appointment_id)
                if current is None:
                    raise NotFoundError(appointment_id)
                end = start + current.duration

            notes = _field(form, "notes")
            update = AppointmentUpdate(
                doctor_id=_text(_field(form, "doctorId")) or None,
                start_time=start,
                end_time=end,
                notes=_text(notes) if notes is not None else None,
            )
            return await self._service.update_appointment(appointment_id, update)

    async def update_status(self, appointment_id: str, status: str) -> Appointment:
        with self._reporting("update_status"):
            try:
                new_status = AppointmentStatus(_text(status).lower())
            except ValueError:
                allowed = ", ".join(s.value for s in AppointmentStatus)
                raise ValidationError(
                    f"Invalid status '{status}'. Allowed values: {allowed}"
                ) from None
            return await self._service.update_status(appointment_id, new_status)

    async def cancel_appointment(self, appointment_id: str, reason: str | None = None) -> Appointment:
        with self._reporting("cancel_appointment"):
            return await self._service.cancel_appointment(appointment_id, reason)

    async def get_patient_appointments(self, patient_id: str) -> list[Appointment]:
        with self._reporting("get_patient_appointments"):
            return await self._service.find_by_patient(patient_id)

    async def get_doctor_appointments(self, doctor_id: str) -> list[Appointment]:
        with self._reporting("get_doctor_appointments"):
            return await self._service.find_by_doctor(doctor_id)

    def _parse_start(self, form: FormData, errors: list[str]) -> dt.datetime | None:
        start_value = _field(form, "startTime")
        if _text(start_value):
            start, err = _parse_datetime(start_value, "startTime", self._clinic_tz)
            if err:
                errors.append(err)
            return start

        date_text = _text(_field(form, "date"))
        if not date_text:
            return None

        # A datetime-local input sends date and time in one value.
        if "T" in date_text:
            start, err = _parse_datetime(date_text, "date", self._clinic_tz)
            if err:
                errors.append(err)
            return start

        time_text = _text(_field(form, "time"))
        if not time_text:
            errors.append("Time is required")
            return None

        date_val, date_err = _parse_iso_date(date_text, "date")
        time_val, time_err = _parse_iso_time(time_text, "time")
        err = date_err or time_err
        if err or date_val is None or time_val is None:
            errors.append(err or "Invalid date/time format.")
            return None
        return dt.datetime.combine(date_val, time_val, tzinfo=self._clinic_tz)

    def _parse_end(self, form: FormData, errors: list[str]) -> dt.datetime | None:
        end_value = _field(form, "endTime")
        if not _text(end_value):
            return None
        end, err = _parse_datetime(end_value, "endTime", self._clinic_tz)
        if err:
            errors.append(err)
        return end

    @contextlib.contextmanager
    def _reporting(self, action: str) -> Iterator[None]:
        try:
            yield
        except BookingError as exc:
            logger.warning("{} rejected: {}", action, exc)
            raise
