import logging
import os
import random
import time
from pathlib import Path

from app.core.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

B_IN_MB = 1048576


class LocalBlobStore:
    """Хранилище загруженных изображений на диске"""

    def __init__(self, root: str, max_size_mb: int = 50):
        self.root = Path(root)
        self.max_size = max_size_mb * B_IN_MB
        self.root.mkdir(parents=True, exist_ok=True)

    def save(self, field_name: str, content_type: str, data: bytes) -> str:
        """Сохранение файла, возвращает уникальное имя"""
        kind, _, extension = (content_type or "").partition("/")
        if kind != "image" or not extension:
            raise ValidationError(f"{field_name} is not an image; its mimetype is {content_type}")
        if len(data) > self.max_size:
            raise ValidationError(f"{field_name} exceeds {self.max_size // B_IN_MB} MB")

        filename = f"{field_name}-{self._unique_suffix()}.{extension}"
        self.path_for(filename).write_bytes(data)
        logger.info(f"Saved upload {filename} ({len(data)} bytes)")
        return filename

    def delete(self, filename: str) -> None:
        """Удаление файла"""
        path = self.path_for(filename)
        if not path.is_file():
            raise NotFoundError(f"Upload '{filename}' not found")
        path.unlink()
        logger.info(f"Deleted upload {filename}")

    def exists(self, filename: str) -> bool:
        return self.path_for(filename).is_file()

    def path_for(self, filename: str) -> Path:
        if not filename or os.path.basename(filename) != filename or filename in (".", ".."):
            raise ValidationError(f"Invalid upload name: {filename!r}")
        return self.root / filename

    @staticmethod
    def _unique_suffix() -> str:
        return f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"
