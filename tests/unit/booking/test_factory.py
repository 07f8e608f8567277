import datetime as dt
from pathlib import Path

import pytest

from posta.booking.factory import build_appointment_service, build_controller
from posta.booking.service import AppointmentService
from posta.config import AppConfig, StorageBackend, StorageConfig
from posta.controllers.appointments import AppointmentController
from posta.domain.models import AppointmentRequest

# Far enough ahead of the real clock used by factory-built services.
START = dt.datetime(2031, 6, 3, 10, 0, tzinfo=dt.timezone.utc)


def _request() -> AppointmentRequest:
    return AppointmentRequest(
        patient_id="p1",
        doctor_id="d1",
        start_time=START,
        end_time=START + dt.timedelta(hours=1),
    )


class TestBuildAppointmentService:
    @pytest.mark.asyncio
    async def test_memory_backend(self) -> None:
        config = AppConfig(
            clinic_timezone="UTC", storage=StorageConfig(backend=StorageBackend.MEMORY)
        )

        service = build_appointment_service(config)
        appt = await service.create_appointment(_request())

        assert isinstance(service, AppointmentService)
        assert await service.find(appt.id) == appt

    @pytest.mark.asyncio
    async def test_file_backend_uses_configured_path_and_key(self, tmp_path: Path) -> None:
        config = AppConfig(
            clinic_timezone="UTC",
            storage=StorageConfig(backend=StorageBackend.FILE, path=tmp_path, key="clinic"),
        )

        await build_appointment_service(config).create_appointment(_request())

        assert (tmp_path / "clinic.json").exists()
        assert len(await build_appointment_service(config).list_appointments()) == 1


class TestBuildController:
    @pytest.mark.asyncio
    async def test_wires_controller(self) -> None:
        controller = build_controller(AppConfig(clinic_timezone="UTC"))

        appt = await controller.create_appointment(
            {"patientId": "p1", "doctorId": "d1", "date": "2031-06-03", "time": "10:00"}
        )

        assert isinstance(controller, AppointmentController)
        assert appt.start_time == START
        assert appt.end_time == START + dt.timedelta(minutes=30)
