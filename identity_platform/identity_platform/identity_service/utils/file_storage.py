import logging
import os
import time
from pathlib import Path
from typing import Optional, Protocol

from ..errors import ValidationError

logger = logging.getLogger(__name__)

PUBLIC_PREFIX = "/uploads"


class FileStorage(Protocol):
    max_size: int

    def save(self, filename: Optional[str], content: bytes) -> dict: ...


class LocalFileStorage:
    """Writes uploads to a directory that is served under /uploads."""

    def __init__(self, upload_dir: str, max_size: int = 5 * 1024 * 1024):
        self.upload_dir = Path(upload_dir)
        self.max_size = max_size
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    def save(self, filename: Optional[str], content: bytes) -> dict:
        """
        Store an uploaded file under a unique name.

        Returns:
            {"filePath": public URL path, "filename": stored name}

        Raises:
            ValidationError: no file, an empty file, or one over max_size
        """
        if not filename or not content:
            raise ValidationError("No file uploaded")
        if len(content) > self.max_size:
            raise ValidationError("File is too large")

        # Strip any client supplied directories
        original = os.path.basename(filename.replace("\\", "/")).strip() or "upload"
        unique_name = f"{int(time.time() * 1000)}-{original}"
        (self.upload_dir / unique_name).write_bytes(content)

        logger.info("File stored: name=%s size=%s", unique_name, len(content))
        return {"filePath": f"{PUBLIC_PREFIX}/{unique_name}", "filename": unique_name}
