import asyncio
import contextlib
import datetime as dt
import uuid
from collections import Counter
from typing import AsyncIterator, Callable, Iterator

from loguru import logger

from posta.booking.adapters.datetime_helpers import (
    parse_instant,
    resolve_timezone,
    utc_now,
    weekday_name,
)
from posta.booking.ports import AbstractAppointmentService, AppointmentRepository
from posta.domain.exceptions import (
    AlreadyCancelledError,
    AppointmentClosedError,
    DoctorUnavailableError,
    InvalidRangeError,
    NotFoundError,
    PastAppointmentError,
    ValidationError,
)
from posta.domain.models import (
    Appointment,
    AppointmentRequest,
    AppointmentStats,
    AppointmentStatus,
    AppointmentUpdate,
)


def _new_id() -> str:
    return str(uuid.uuid4())


def _parse_range(
    start_time: dt.datetime | str, end_time: dt.datetime | str
) -> tuple[dt.datetime, dt.datetime]:
    start = parse_instant(start_time)
    end = parse_instant(end_time)
    if start is None or end is None:
        raise InvalidRangeError("Invalid start or end time")
    if end <= start:
        raise InvalidRangeError("End time must be after start time")
    return start, end


class AppointmentService(AbstractAppointmentService):
    """Appointment lifecycle rules layered over an AppointmentRepository.

    Availability checks and the writes that depend on them run under a
    per-doctor lock, so two coroutines cannot book the same slot.
    """

    def __init__(
        self,
        repository: AppointmentRepository,
        *,
        clock: Callable[[], dt.datetime] = utc_now,
        id_factory: Callable[[], str] = _new_id,
        clinic_timezone: str = "UTC",
    ) -> None:
        self._repository = repository
        self._clock = clock
        self._id_factory = id_factory
        self._clinic_tz = resolve_timezone(clinic_timezone)
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()

    async def find(self, appointment_id: str) -> Appointment | None:
        return await self._repository.find(appointment_id)

    async def list_appointments(self) -> list[Appointment]:
        return await self._repository.find_all()

    async def find_by_patient(self, patient_id: str) -> list[Appointment]:
        return await self._repository.find_by_patient(patient_id)

    async def find_by_doctor(self, doctor_id: str) -> list[Appointment]:
        return await self._repository.find_by_doctor(doctor_id)

    async def check_availability(
        self,
        doctor_id: str,
        start_time: dt.datetime | str,
        end_time: dt.datetime | str,
        exclude_id: str | None = None,
    ) -> bool:
        start, end = _parse_range(start_time, end_time)
        return await self._is_available(doctor_id, start, end, exclude_id)

    async def create_appointment(self, request: AppointmentRequest) -> Appointment:
        patient_id, doctor_id = request.patient_id.strip(), request.doctor_id.strip()
        missing = [
            name for name, value in (("patientId", patient_id), ("doctorId", doctor_id)) if not value
        ]
        if missing:
            raise ValidationError([f"'{name}' is required" for name in missing])

        start, end = _parse_range(request.start_time, request.end_time)
        self._ensure_future(start)

        logger.info(
            "Creating appointment: doctor={}, start={}, end={}",
            doctor_id,
            start.isoformat(),
            end.isoformat(),
        )

        async with self._locked(doctor_id):
            if not await self._is_available(doctor_id, start, end):
                raise DoctorUnavailableError(doctor_id, start, end)

            appointment = await self._repository.save(
                Appointment(
                    id=self._id_factory(),
                    patient_id=patient_id,
                    doctor_id=doctor_id,
                    start_time=start,
                    end_time=end,
                    status=AppointmentStatus.SCHEDULED,
                    notes=request.notes,
                )
            )

        logger.info("Appointment created: id={}", appointment.id)
        return appointment

    async def update_appointment(
        self, appointment_id: str, update: AppointmentUpdate
    ) -> Appointment:
        if update.doctor_id is not None:
            update = update.model_copy(update={"doctor_id": update.doctor_id.strip() or None})
        extra_doctors = [update.doctor_id] if update.doctor_id else []

        async with self._hold(appointment_id, *extra_doctors) as current:
            self._ensure_open(current)
            changed = current.model_copy(update=update.changes())

            if update.moves_slot:
                start, end = _parse_range(changed.start_time, changed.end_time)
                if update.start_time is not None:
                    self._ensure_future(start)
                available = await self._is_available(
                    changed.doctor_id, start, end, exclude_id=current.id
                )
                if not available:
                    raise DoctorUnavailableError(changed.doctor_id, start, end)

            appointment = await self._repository.save(changed)

        logger.info("Appointment updated: id={}", appointment.id)
        return appointment

    async def cancel_appointment(
        self, appointment_id: str, reason: str | None = None
    ) -> Appointment:
        logger.info("Cancelling appointment {}", appointment_id)

        async with self._hold(appointment_id) as current:
            now = self._clock()
            if not current.can_cancel(now):
                if current.status == AppointmentStatus.CANCELLED:
                    raise AlreadyCancelledError(current.id)
                if current.start_time <= now:
                    raise PastAppointmentError(current.id)
                raise AppointmentClosedError(current.id, current.status.value)

            appointment = await self._repository.save(
                current.model_copy(
                    update={
                        "status": AppointmentStatus.CANCELLED,
                        "cancellation_reason": reason or None,
                    }
                )
            )

        logger.info("Appointment cancelled: id={}", appointment.id)
        return appointment

    async def update_status(
        self, appointment_id: str, status: AppointmentStatus
    ) -> Appointment:
        if status == AppointmentStatus.CANCELLED:
            return await self.cancel_appointment(appointment_id)

        async with self._hold(appointment_id) as current:
            if current.status == status:
                return current
            self._ensure_open(current)
            appointment = await self._repository.save(current.model_copy(update={"status": status}))

        logger.info("Appointment {} moved to {}", appointment.id, status.value)
        return appointment

    async def delete_appointment(self, appointment_id: str) -> bool:
        deleted = await self._repository.delete(appointment_id)
        if deleted:
            logger.info("Appointment deleted: id={}", appointment_id)
        return deleted

    async def get_doctor_schedule(
        self, doctor_id: str, start: dt.datetime, end: dt.datetime
    ) -> list[Appointment]:
        start, end = self._localize(start), self._localize(end)
        appointments = [
            a
            for a in await self._repository.find_by_doctor(doctor_id)
            if a.status != AppointmentStatus.CANCELLED and start <= a.start_time <= end  # type: ignore[operator]
        ]
        return sorted(appointments, key=lambda a: a.start_time)

    async def get_patient_appointments(
        self,
        patient_id: str,
        *,
        status: AppointmentStatus | None = None,
        start: dt.datetime | None = None,
        end: dt.datetime | None = None,
    ) -> list[Appointment]:
        start, end = self._localize(start), self._localize(end)
        appointments = await self._repository.find_by_patient(patient_id)
        if status is not None:
            appointments = [a for a in appointments if a.status == status]
        if start is not None and end is not None:
            appointments = [a for a in appointments if start <= a.start_time <= end]
        return sorted(appointments, key=lambda a: a.start_time, reverse=True)

    async def get_appointment_stats(
        self,
        *,
        start: dt.datetime | None = None,
        end: dt.datetime | None = None,
        doctor_id: str | None = None,
    ) -> AppointmentStats:
        start, end = self._localize(start), self._localize(end)
        appointments = await self._repository.find_all()
        if start is not None and end is not None:
            appointments = [a for a in appointments if start <= a.start_time <= end]
        if doctor_id:
            appointments = [a for a in appointments if a.doctor_id == doctor_id]

        if not appointments:
            return AppointmentStats()

        total_minutes = sum(a.duration.total_seconds() / 60 for a in appointments)
        return AppointmentStats(
            total=len(appointments),
            by_status=dict(Counter(a.status.value for a in appointments)),
            by_weekday=dict(Counter(weekday_name(a.start_time, self._clinic_tz) for a in appointments)),
            by_doctor=dict(Counter(a.doctor_id for a in appointments)),
            average_duration_minutes=round(total_minutes / len(appointments)),
        )

    async def _is_available(
        self,
        doctor_id: str,
        start: dt.datetime,
        end: dt.datetime,
        exclude_id: str | None = None,
    ) -> bool:
        conflicts = await self._repository.find_overlapping(doctor_id, start, end, exclude_id)
        if conflicts:
            logger.debug("Doctor {} has {} conflicting appointment(s)", doctor_id, len(conflicts))
        return not conflicts

    async def _require(self, appointment_id: str) -> Appointment:
        appointment = await self._repository.find(appointment_id)
        if appointment is None:
            raise NotFoundError(appointment_id)
        return appointment

    @contextlib.contextmanager
    def _doctor_lock(self, doctor_id: str) -> Iterator[asyncio.Lock]:
        """Reference a doctor's lock, dropping it once no coroutine holds or awaits it."""
        lock = self._locks.setdefault(doctor_id, asyncio.Lock())
        self._lock_users[doctor_id] += 1
        try:
            yield lock
        finally:
            self._lock_users[doctor_id] -= 1
            if not self._lock_users[doctor_id]:
                del self._lock_users[doctor_id]
                del self._locks[doctor_id]

    @contextlib.asynccontextmanager
    async def _locked(self, *doctor_ids: str) -> AsyncIterator[None]:
        # Sorted acquisition keeps two cross-doctor moves from deadlocking.
        async with contextlib.AsyncExitStack() as stack:
            for doctor_id in sorted(set(doctor_ids)):
                lock = stack.enter_context(self._doctor_lock(doctor_id))
                await stack.enter_async_context(lock)
            yield

    @contextlib.asynccontextmanager
    async def _hold(self, appointment_id: str, *doctor_ids: str) -> AsyncIterator[Appointment]:
        """Lock the appointment's doctor (plus ``doctor_ids``) and yield a fresh copy."""
        while True:
            current = await self._require(appointment_id)
            async with self._locked(current.doctor_id, *doctor_ids):
                fresh = await self._require(appointment_id)
                # Moved to another doctor while we waited; lock that one instead.
                if fresh.doctor_id != current.doctor_id:
                    continue
                yield fresh
                return

    def _ensure_open(self, appointment: Appointment) -> None:
        if appointment.status == AppointmentStatus.CANCELLED:
            raise AlreadyCancelledError(appointment.id)
        if appointment.status.is_terminal:
            raise AppointmentClosedError(appointment.id, appointment.status.value)

    def _localize(self, value: dt.datetime | None) -> dt.datetime | None:
        return parse_instant(value, self._clinic_tz) if value is not None else None

    def _ensure_future(self, start: dt.datetime) -> None:
        if start <= self._clock():
            raise ValidationError("Appointment cannot be scheduled in the past")
