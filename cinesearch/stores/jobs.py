"""Ingestion job store."""

from abc import ABC, abstractmethod
from datetime import UTC, datetime

from cinesearch.stores.models import IngestionJob


class IngestionJobStore(ABC):
    """Abstract base class for ingestion job persistence.

    Jobs are kept for audit and never reused across records.
    """

    @abstractmethod
    async def create(self, job: IngestionJob) -> IngestionJob:
        """Persist a new job."""
        ...

    @abstractmethod
    async def save(self, job: IngestionJob) -> IngestionJob:
        """Persist the current state of an existing job."""
        ...

    @abstractmethod
    async def get(self, job_id: str) -> IngestionJob | None:
        """Fetch one job by id."""
        ...

    @abstractmethod
    async def list_for_record(self, record_id: str) -> list[IngestionJob]:
        """Jobs for a record, oldest first."""
        ...


class InMemoryIngestionJobStore(IngestionJobStore):
    """Job store held in a dict."""

    def __init__(self) -> None:
        self._jobs: dict[str, IngestionJob] = {}

    async def create(self, job: IngestionJob) -> IngestionJob:
        self._jobs[job.id] = job.model_copy(deep=True)
        return job

    async def save(self, job: IngestionJob) -> IngestionJob:
        job.updated_at = datetime.now(UTC)
        self._jobs[job.id] = job.model_copy(deep=True)
        return job

    async def get(self, job_id: str) -> IngestionJob | None:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def list_for_record(self, record_id: str) -> list[IngestionJob]:
        jobs = [job for job in self._jobs.values() if job.record_id == record_id]
        jobs.sort(key=lambda job: job.created_at)
        return [job.model_copy(deep=True) for job in jobs]
