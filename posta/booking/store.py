import datetime as dt
import json
from typing import Callable

from loguru import logger

from posta.booking.adapters.datetime_helpers import utc_now
from posta.booking.ports import KeyValueStorage
from posta.domain.exceptions import AlreadyCancelledError, BookingError, StorageError
from posta.domain.models import Appointment, AppointmentStatus

DEFAULT_STORAGE_KEY = "appointments"


class KeyValueAppointmentRepository:
    """Appointment store that keeps the whole collection as one JSON value.

    Every mutation rewrites the collection under ``key``.  Reads decode a
    fresh copy each time, so callers never share records with the store.
    None of the methods yield to the event loop, which makes each call
    atomic with respect to other coroutines.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        key: str = DEFAULT_STORAGE_KEY,
        clock: Callable[[], dt.datetime] = utc_now,
    ) -> None:
        self._storage = storage
        self._key = key
        self._clock = clock

    async def find(self, appointment_id: str) -> Appointment | None:
        return next((a for a in self._load() if a.id == appointment_id), None)

    async def find_all(self) -> list[Appointment]:
        return self._load()

    async def find_by_patient(self, patient_id: str) -> list[Appointment]:
        return [a for a in self._load() if a.patient_id == patient_id]

    async def find_by_doctor(self, doctor_id: str) -> list[Appointment]:
        return [a for a in self._load() if a.doctor_id == doctor_id]

    async def find_overlapping(
        self,
        doctor_id: str,
        start: dt.datetime,
        end: dt.datetime,
        exclude_id: str | None = None,
    ) -> list[Appointment]:
        return [
            a
            for a in self._load()
            if a.doctor_id == doctor_id
            and a.status != AppointmentStatus.CANCELLED
            and a.id != exclude_id
            and a.overlaps(start, end)
        ]

    async def save(self, appointment: Appointment) -> Appointment:
        appointment.validate()

        appointments = self._load()
        index = next((i for i, a in enumerate(appointments) if a.id == appointment.id), None)
        existing = appointments[index] if index is not None else None

        if (
            existing is not None
            and existing.status == AppointmentStatus.CANCELLED
            and appointment.status != AppointmentStatus.CANCELLED
        ):
            raise AlreadyCancelledError(appointment.id)

        now = self._clock()
        cancelled_at = None
        if appointment.status == AppointmentStatus.CANCELLED:
            was_cancelled = existing is not None and existing.status == AppointmentStatus.CANCELLED
            cancelled_at = existing.cancelled_at if was_cancelled else now

        stored = appointment.model_copy(
            update={
                "created_at": existing.created_at if existing else now,
                "updated_at": now,
                "cancelled_at": cancelled_at,
            }
        )

        if index is None:
            appointments.append(stored)
        else:
            appointments[index] = stored
        self._dump(appointments)

        logger.debug(
            "Saved appointment {} ({})", stored.id, "replaced" if index is not None else "added"
        )
        return stored

    async def delete(self, appointment_id: str) -> bool:
        appointments = self._load()
        remaining = [a for a in appointments if a.id != appointment_id]
        if len(remaining) == len(appointments):
            return False

        self._dump(remaining)
        logger.debug("Deleted appointment {}", appointment_id)
        return True

    def _load(self) -> list[Appointment]:
        try:
            raw = self._storage.get(self._key)
        except BookingError:
            raise
        except Exception as exc:
            raise StorageError(f"Failed to read '{self._key}': {exc}") from exc

        if not raw:
            return []

        try:
            items = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StorageError(f"Stored value under '{self._key}' is not valid JSON") from exc
        if not isinstance(items, list):
            raise StorageError(f"Stored value under '{self._key}' is not a list")

        try:
            return [Appointment.from_dict(item) for item in items]
        except BookingError as exc:
            raise StorageError(f"Stored appointment under '{self._key}' is corrupt: {exc}") from exc

    def _dump(self, appointments: list[Appointment]) -> None:
        payload = json.dumps([a.to_dict() for a in appointments])
        try:
            self._storage.set(self._key, payload)
        except BookingError:
            raise
        except Exception as exc:
            raise StorageError(f"Failed to write '{self._key}': {exc}") from exc
