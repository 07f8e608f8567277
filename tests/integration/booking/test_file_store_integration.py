"""Appointment store on disk: records survive a fresh repository and service."""

import datetime as dt
import json
from pathlib import Path

import pytest

from posta.booking.adapters.file import JsonFileStorage
from posta.booking.service import AppointmentService
from posta.booking.store import KeyValueAppointmentRepository
from posta.domain.models import AppointmentRequest, AppointmentStatus

UTC = dt.timezone.utc
NOW = dt.datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


def _service(directory: Path) -> AppointmentService:
    repository = KeyValueAppointmentRepository(JsonFileStorage(directory), clock=lambda: NOW)
    return AppointmentService(repository, clock=lambda: NOW)


class TestFileBackedStore:
    @pytest.mark.asyncio
    async def test_appointments_survive_restart(self, tmp_path: Path) -> None:
        first = _service(tmp_path)
        appt = await first.create_appointment(
            AppointmentRequest(
                patient_id="p1",
                doctor_id="d1",
                start_time=dt.datetime(2026, 3, 10, 10, 0, tzinfo=UTC),
                end_time=dt.datetime(2026, 3, 10, 11, 0, tzinfo=UTC),
            )
        )
        await first.cancel_appointment(appt.id, reason="moved away")

        reloaded = await _service(tmp_path).find(appt.id)

        assert reloaded is not None
        assert reloaded.status == AppointmentStatus.CANCELLED
        assert reloaded.cancellation_reason == "moved away"
        assert reloaded.cancelled_at == NOW

    @pytest.mark.asyncio
    async def test_file_holds_camel_case_json_array(self, tmp_path: Path) -> None:
        await _service(tmp_path).create_appointment(
            AppointmentRequest(
                patient_id="p1",
                doctor_id="d1",
                start_time=dt.datetime(2026, 3, 10, 10, 0, tzinfo=UTC),
                end_time=dt.datetime(2026, 3, 10, 11, 0, tzinfo=UTC),
            )
        )

        payload = json.loads((tmp_path / "appointments.json").read_text(encoding="utf-8"))

        assert isinstance(payload, list)
        assert payload[0]["doctorId"] == "d1"
        assert payload[0]["status"] == "scheduled"
