import datetime as dt

import pytest

from posta.booking.adapters.memory import InMemoryStorage
from posta.booking.service import AppointmentService
from posta.booking.store import KeyValueAppointmentRepository

# Monday 2026-03-02 09:00 UTC; test appointments sit on the following Tuesday.
NOW = dt.datetime(2026, 3, 2, 9, 0, tzinfo=dt.timezone.utc)


@pytest.fixture
def now() -> dt.datetime:
    return NOW


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def repository(storage: InMemoryStorage, now: dt.datetime) -> KeyValueAppointmentRepository:
    return KeyValueAppointmentRepository(storage, clock=lambda: now)


@pytest.fixture
def service(repository: KeyValueAppointmentRepository, now: dt.datetime) -> AppointmentService:
    return AppointmentService(repository, clock=lambda: now, clinic_timezone="UTC")
