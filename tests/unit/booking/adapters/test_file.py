from pathlib import Path

import pytest

from posta.booking.adapters.file import JsonFileStorage


@pytest.fixture
def file_storage(tmp_path: Path) -> JsonFileStorage:
    return JsonFileStorage(tmp_path / "data")


class TestJsonFileStorage:
    def test_missing_key_returns_none(self, file_storage: JsonFileStorage) -> None:
        assert file_storage.get("appointments") is None

    def test_set_creates_directory_and_file(self, file_storage: JsonFileStorage) -> None:
        file_storage.set("appointments", "[]")

        assert (file_storage.directory / "appointments.json").read_text(encoding="utf-8") == "[]"
        assert file_storage.get("appointments") == "[]"

    def test_overwrites_without_leaving_temp_files(self, file_storage: JsonFileStorage) -> None:
        file_storage.set("appointments", "[1]")
        file_storage.set("appointments", "[1, 2]")

        assert file_storage.get("appointments") == "[1, 2]"
        assert [p.name for p in file_storage.directory.iterdir()] == ["appointments.json"]

    def test_remove(self, file_storage: JsonFileStorage) -> None:
        file_storage.set("appointments", "[]")

        file_storage.remove("appointments")
        file_storage.remove("appointments")

        assert file_storage.get("appointments") is None

    def test_keys_are_independent(self, file_storage: JsonFileStorage) -> None:
        file_storage.set("clinic-a", "a")
        file_storage.set("clinic-b", "b")

        assert file_storage.get("clinic-a") == "a"
        assert file_storage.get("clinic-b") == "b"

    @pytest.mark.parametrize(
        "key",
        ["../escape", "a/b", "", ".."],
        ids=["parent-traversal", "nested", "empty", "dotdot"],
    )
    def test_rejects_unsafe_keys(self, file_storage: JsonFileStorage, key: str) -> None:
        with pytest.raises(ValueError, match="Invalid storage key"):
            file_storage.get(key)
