# backend/pigen/store.py
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from .exceptions import InvalidTransition, PersistenceFailure
from .models import ALLOWED_TRANSITIONS, Job, JobKind, JobStatus, utcnow

logger = logging.getLogger(__name__)


class JobStore:
    """
    Durable job records. Every call opens its own short session, so the
    returned Job objects are detached snapshots, never live handles.
    """

    def __init__(self, engine):
        self.engine = engine

    def create(self, job_id: str, subject_id: str, tenant_id: Optional[str] = None,
               kind: JobKind = JobKind.GENERATE_PDF) -> Job:
        now = utcnow()
        job = Job(
            job_id=job_id,
            kind=kind,
            subject_id=subject_id,
            tenant_id=tenant_id,
            status=JobStatus.QUEUED,
            created_at=now,
            updated_at=now,
        )
        try:
            with Session(self.engine) as session:
                session.add(job)
                session.commit()
                session.refresh(job)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"could not create job: {e}", job_id=job_id) from e
        return job

    def get(self, job_id: str) -> Optional[Job]:
        try:
            with Session(self.engine) as session:
                return session.get(Job, job_id)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"could not read job: {e}", job_id=job_id) from e

    def transition(self, job_id: str, status: JobStatus, *, result_path: Optional[str] = None,
                   result_url: Optional[str] = None, error: Optional[str] = None) -> Job:
        """
        Move a job to `status`. Result fields are kept only on done and the
        error only on failed, whatever the caller passes.
        """
        try:
            with Session(self.engine) as session:
                job = session.get(Job, job_id)
                if job is None:
                    raise PersistenceFailure("job record missing", job_id=job_id)

                current = JobStatus(job.status)
                if status not in ALLOWED_TRANSITIONS[current]:
                    raise InvalidTransition(job_id, current.value, status.value)

                job.status = status
                if status == JobStatus.DONE:
                    job.result_path = result_path
                    job.result_url = result_url
                    job.error = None
                elif status == JobStatus.FAILED:
                    job.result_path = None
                    job.result_url = None
                    job.error = error or "unknown error"
                job.updated_at = utcnow()

                session.add(job)
                session.commit()
                session.refresh(job)
                return job
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"could not update job: {e}", job_id=job_id) from e
