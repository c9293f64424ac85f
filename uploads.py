"""
Image uploads stored on disk under the public root.
"""

import logging
import os
import shutil
import time
from typing import Optional

from fastapi import UploadFile

logger = logging.getLogger(__name__)


class ImageStore:
    def __init__(self, directory: str):
        self.directory = directory
        os.makedirs(directory, exist_ok=True)

    def path(self, filename: str) -> str:
        return os.path.join(self.directory, os.path.basename(filename))

    def save(self, upload: Optional[UploadFile]) -> Optional[str]:
        """Write the upload under a time-based name; returns the filename or None when nothing was sent."""
        if upload is None or not upload.filename:
            return None
        _, ext = os.path.splitext(upload.filename)
        filename = f"{time.time_ns()}{ext.lower()}"
        with open(self.path(filename), "wb") as out:
            shutil.copyfileobj(upload.file, out)
        return filename

    def discard(self, filename: str) -> bool:
        """Best-effort removal. Failures are logged and never raised."""
        try:
            os.remove(self.path(filename))
        except OSError as e:
            logger.warning("Failed to delete old image %s: %s", filename, e)
            return False
        logger.debug("Deleted old image %s", filename)
        return True
