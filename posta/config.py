from enum import Enum
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageBackend(Enum):
    MEMORY = "memory"
    FILE = "file"


class StorageConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="POSTA_STORAGE_", env_file=".env", extra="ignore")

    backend: StorageBackend = StorageBackend.MEMORY
    path: Path = Path(".posta")
    key: str = "appointments"


class BookingConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="POSTA_BOOKING_", env_file=".env", extra="ignore")

    default_duration_minutes: int = Field(default=30, gt=0)


class AppConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="POSTA_", env_file=".env", extra="ignore")

    clinic_timezone: str = "America/New_York"
    storage: StorageConfig = Field(default_factory=lambda: StorageConfig())
    booking: BookingConfig = Field(default_factory=lambda: BookingConfig())
