import os
import re
import tempfile
from pathlib import Path

from loguru import logger

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class JsonFileStorage:
    """KeyValueStorage that keeps each key in ``<directory>/<key>.json``.

    Writes go to a temporary file in the same directory which then
    replaces the target, so readers never see a half-written value.
    Not safe for several processes writing the same directory.
    """

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def get(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        self._directory.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(dir=self._directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug("Wrote {} bytes to {}", len(value), path)

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key) or key in (".", ".."):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self._directory / f"{key}.json"
