# backend/pigen/models.py
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobKind(str, Enum):
    GENERATE_PDF = "generate_pdf"


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.FAILED)


# queued -> failed only happens when the "running" write itself fails
ALLOWED_TRANSITIONS = {
    JobStatus.QUEUED: {JobStatus.RUNNING, JobStatus.FAILED},
    JobStatus.RUNNING: {JobStatus.DONE, JobStatus.FAILED},
    JobStatus.DONE: set(),
    JobStatus.FAILED: set(),
}


class Job(SQLModel, table=True):
    __tablename__ = "pigen_jobs"

    job_id: str = Field(primary_key=True, nullable=False)
    kind: JobKind = Field(default=JobKind.GENERATE_PDF, nullable=False)
    subject_id: str = Field(nullable=False, index=True)
    tenant_id: Optional[str] = Field(default=None, index=True)
    status: JobStatus = Field(default=JobStatus.QUEUED, nullable=False)
    result_path: Optional[str] = Field(default=None)
    result_url: Optional[str] = Field(default=None)
    error: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def snapshot(self) -> dict:
        """Plain dict in the shape status consumers expect."""
        return {
            "jobId": self.job_id,
            "type": JobKind(self.kind).value,
            "subjectId": self.subject_id,
            "tenantId": self.tenant_id,
            "status": JobStatus(self.status).value,
            "resultPath": self.result_path,
            "resultUrl": self.result_url,
            "error": self.error,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
