"""
Storage service for job inputs and generated images on the local filesystem.
"""

import logging
import re
import uuid
from pathlib import Path
from typing import Optional

from thumbforge.config import settings
from thumbforge.services.surface import ENCODERS, normalize_mime_type

logger = logging.getLogger(__name__)

_IMAGE_ID_PATTERN = re.compile(r"^(?P<operation>[a-z]+)_(?P<prefix>[0-9a-f]{8})$")


class StorageService:
    """
    Manages one directory per derivation job.

    Layout:
    base_dir/
      {job_id}/
        inputs/
          {role}_{original filename}
        outputs/
          {operation}_{job_id[:8]}.{ext}
    """

    def __init__(self, base_dir: Optional[Path] = None):
        self.base_dir = base_dir or settings.outputs_dir
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def create_job(self) -> str:
        """Create a new job directory and return its ID."""
        job_id = str(uuid.uuid4())
        job_dir = self.get_job_dir(job_id)
        (job_dir / "inputs").mkdir(parents=True, exist_ok=True)
        (job_dir / "outputs").mkdir(parents=True, exist_ok=True)
        logger.info(f"Created job {job_id}")
        return job_id

    def get_job_dir(self, job_id: str) -> Path:
        """Get the directory path for a job."""
        return self.base_dir / job_id

    def save_input(self, job_id: str, content: bytes, original_filename: str, role: str) -> Path:
        """Persist an uploaded input file and return its path."""
        safe_name = Path(original_filename or "upload").name
        path = self.get_job_dir(job_id) / "inputs" / f"{role}_{safe_name}"
        path.write_bytes(content)
        logger.info(f"Saved {role} input {safe_name} ({len(content)} bytes) as {path}")
        return path

    def generate_image_id(self, job_id: str, operation: str) -> str:
        """Generate the public ID of a job output."""
        return f"{operation}_{job_id[:8]}"

    def get_output_path(self, job_id: str, operation: str, mime_type: str) -> Path:
        """Path of a job output; the extension follows the MIME type."""
        encoder = ENCODERS.get(normalize_mime_type(mime_type))
        extension = encoder.extension if encoder else ".bin"
        image_id = self.generate_image_id(job_id, operation)
        return self.get_job_dir(job_id) / "outputs" / f"{image_id}{extension}"

    def get_image_by_id(self, image_id: str) -> Optional[Path]:
        """
        Find a generated image by its ID across all jobs.

        Image IDs follow the format: {operation}_{job_id_prefix}
        """
        match = _IMAGE_ID_PATTERN.match(image_id)
        if match is None:
            return None

        prefix = match.group("prefix")
        for job_dir in self.base_dir.iterdir():
            if job_dir.is_dir() and job_dir.name.startswith(prefix):
                for candidate in (job_dir / "outputs").glob(f"{image_id}.*"):
                    return candidate
        return None

    def get_mime_type(self, path: Path) -> str:
        """MIME type of a stored output, from its extension."""
        for encoder in ENCODERS.values():
            if encoder.extension == path.suffix.lower():
                return encoder.mime_type
        return "application/octet-stream"


# Global service instance
storage_service = StorageService()
