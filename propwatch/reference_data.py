import logging
import threading
from typing import Dict, List

from propwatch.errors import ValidationError
from propwatch.ingestion import SourceFile
from propwatch.models import UploadJob

logger = logging.getLogger(__name__)

MIN_YEAR = 1995
MAX_YEAR = 2030


class ReferenceDatasets:
    """Official price-paid records the service verifies matches against."""

    def __init__(self, client, min_year: int = MIN_YEAR, max_year: int = MAX_YEAR):
        self.client = client
        self.min_year = min_year
        self.max_year = max_year
        self._uploading = threading.Lock()

    @property
    def is_uploading(self) -> bool:
        return self._uploading.locked()

    def upload(self, year: int, month: int, file: SourceFile) -> Dict:
        if not self.min_year <= year <= self.max_year:
            raise ValidationError(f"Year must be between {self.min_year} and {self.max_year}")
        if not 1 <= month <= 12:
            raise ValidationError("Month must be between 1 and 12")
        if not file.content:
            raise ValidationError(f"{file.filename} is empty")
        if not self._uploading.acquire(blocking=False):
            raise ValidationError("An official records upload is already in progress")
        try:
            accepted = self.client.upload_reference_dataset(year, month, file.filename, file.content)
        finally:
            self._uploading.release()
        logger.info("Official records file %s uploaded for %04d-%02d, processing started", file.filename, year, month)
        return accepted

    def list_jobs(self) -> List[UploadJob]:
        return self.client.list_reference_jobs()

    def delete_job(self, job_id: str):
        if not job_id:
            raise ValidationError("Job id is required")
        self.client.delete_reference_job(job_id)
        logger.info("Deleted official records upload %s", job_id)


def active_jobs(jobs: List[UploadJob]) -> List[UploadJob]:
    """Jobs the service is still working on; worth polling again."""
    return [job for job in jobs if job.status in ("uploaded", "processing")]
