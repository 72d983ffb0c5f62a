import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif"}


class InvalidImageError(ValueError):
    pass


class ImageStore:
    """
    Stores uploaded movie images on local disk under upload_path.
    Files keep the uploaded basename, so a second upload with the same
    name replaces the first.
    """
    def __init__(self, upload_path: str, max_bytes: int = 5 * 1024 * 1024):
        self.upload_path = upload_path
        self.max_bytes = max_bytes

    def validate(self, filename: str, size: int) -> None:
        ext = os.path.splitext(filename or "")[1].lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise InvalidImageError("Invalid file type. Only jpg, jpeg, png, and gif are allowed")
        if size == 0:
            raise InvalidImageError("Empty file")
        if size > self.max_bytes:
            raise InvalidImageError(
                f"File size exceeds maximum limit of {self.max_bytes / (1024 * 1024):g}MB"
            )

    def save(self, filename: str, data: bytes) -> str:
        self.validate(filename, len(data))
        name = Path(filename.replace("\\", "/")).name
        os.makedirs(self.upload_path, exist_ok=True)
        path = os.path.join(self.upload_path, name)
        with open(path, "wb") as f:
            f.write(data)
        return path

    def exists(self, path: str) -> bool:
        return bool(path) and os.path.isfile(path)

    def remove(self, path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            logger.info("Image %s was already gone", path)
