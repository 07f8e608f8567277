from typing import Callable

from loguru import logger

from posta.booking.adapters.file import JsonFileStorage
from posta.booking.adapters.memory import InMemoryStorage
from posta.booking.ports import KeyValueStorage
from posta.booking.service import AppointmentService
from posta.booking.store import KeyValueAppointmentRepository
from posta.config import AppConfig, StorageBackend
from posta.controllers.appointments import AppointmentController


def _build_memory(config: AppConfig) -> KeyValueStorage:
    return InMemoryStorage()


def _build_file(config: AppConfig) -> KeyValueStorage:
    return JsonFileStorage(config.storage.path)


_BUILDERS: dict[StorageBackend, Callable[[AppConfig], KeyValueStorage]] = {
    StorageBackend.MEMORY: _build_memory,
    StorageBackend.FILE: _build_file,
}


def build_appointment_service(config: AppConfig) -> AppointmentService:
    """Build the appointment service on the storage backend selected in config."""
    backend = config.storage.backend
    logger.info("Building appointment service with storage backend: {}", backend.value)

    repository = KeyValueAppointmentRepository(_BUILDERS[backend](config), key=config.storage.key)
    return AppointmentService(repository, clinic_timezone=config.clinic_timezone)


def build_controller(config: AppConfig) -> AppointmentController:
    return AppointmentController(
        build_appointment_service(config),
        clinic_timezone=config.clinic_timezone,
        default_duration_minutes=config.booking.default_duration_minutes,
    )
