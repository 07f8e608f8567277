import datetime as dt
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Mapping, TypeVar

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from posta.domain.exceptions import InvalidRangeError, ValidationError

_E = TypeVar("_E", bound="Entity")


def _as_utc_if_naive(value: dt.datetime | None) -> dt.datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value


class AppointmentStatus(str, Enum):
    """Lifecycle states of an appointment."""

    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    @property
    def is_terminal(self) -> bool:
        return self is not AppointmentStatus.SCHEDULED


CANCELLABLE_STATUSES = frozenset({AppointmentStatus.SCHEDULED})


class Entity(BaseModel, ABC):
    """Base for persisted domain records: an identity plus a validation contract.

    Entities are immutable.  Serialized form uses camelCase keys; both
    camelCase and snake_case are accepted when loading.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str

    @abstractmethod
    def validate(self) -> None:  # type: ignore[override]
        """Raise ``ValidationError`` if the entity breaks its invariants."""

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_dict(cls: type[_E], data: Mapping[str, Any]) -> _E:
        try:
            return cls.model_validate(dict(data) if isinstance(data, Mapping) else data)
        except pydantic.ValidationError as exc:
            errors = [
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                for err in exc.errors()
            ]
            raise ValidationError(errors) from exc


class Appointment(Entity):
    """An appointment between a patient and a doctor."""

    patient_id: str
    doctor_id: str
    start_time: dt.datetime
    end_time: dt.datetime
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    notes: str = ""
    cancellation_reason: str | None = None
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None
    cancelled_at: dt.datetime | None = None

    @field_validator("start_time", "end_time", "created_at", "updated_at", "cancelled_at")
    @classmethod
    def assume_utc(cls, value: dt.datetime | None) -> dt.datetime | None:
        return _as_utc_if_naive(value)

    def validate(self) -> None:  # type: ignore[override]
        missing = [
            name
            for name, value in (("patientId", self.patient_id), ("doctorId", self.doctor_id))
            if not value or not value.strip()
        ]
        if missing:
            raise ValidationError([f"'{name}' is required" for name in missing])

        if self.end_time <= self.start_time:
            raise InvalidRangeError("End time must be after start time")

        if not isinstance(self.status, AppointmentStatus):
            raise ValidationError(
                f"Invalid status '{self.status}'. Allowed values: "
                + ", ".join(s.value for s in AppointmentStatus)
            )

    def can_cancel(self, now: dt.datetime | None = None) -> bool:
        """Whether the appointment is still open and has not started yet."""
        now = now or dt.datetime.now(dt.timezone.utc)
        return self.status in CANCELLABLE_STATUSES and self.start_time > now

    @property
    def duration(self) -> dt.timedelta:
        return self.end_time - self.start_time

    def overlaps(self, start: dt.datetime, end: dt.datetime) -> bool:
        """Half-open intersection of ``[start_time, end_time)`` with ``[start, end)``."""
        return self.start_time < end and self.end_time > start


class AppointmentRequest(BaseModel):
    """A parsed request to book an appointment."""

    model_config = ConfigDict(frozen=True)

    patient_id: str
    doctor_id: str
    start_time: dt.datetime
    end_time: dt.datetime
    notes: str = ""

    @field_validator("start_time", "end_time")
    @classmethod
    def assume_utc(cls, value: dt.datetime) -> dt.datetime:
        return _as_utc_if_naive(value)  # type: ignore[return-value]


class AppointmentUpdate(BaseModel):
    """Field changes for an existing appointment.  ``None`` leaves a field as is."""

    model_config = ConfigDict(frozen=True)

    doctor_id: str | None = None
    start_time: dt.datetime | None = None
    end_time: dt.datetime | None = None
    notes: str | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def assume_utc(cls, value: dt.datetime | None) -> dt.datetime | None:
        return _as_utc_if_naive(value)

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)

    @property
    def moves_slot(self) -> bool:
        return any(v is not None for v in (self.doctor_id, self.start_time, self.end_time))


class AppointmentStats(BaseModel):
    """Aggregate counts over a set of appointments."""

    model_config = ConfigDict(frozen=True)

    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    by_weekday: dict[str, int] = Field(default_factory=dict)
    by_doctor: dict[str, int] = Field(default_factory=dict)
    average_duration_minutes: int = 0
