# backend/pigen/jobs.py
import asyncio
import inspect
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, NamedTuple, Optional
from uuid import uuid4

import aiofiles

from .exceptions import InvalidRequest, RenderFailure, StageFailure
from .models import Job, JobStatus
from .renderer import Renderer
from .storage import StorageAdapter
from .store import JobStore

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


class JobOutcome(NamedTuple):
    status: JobStatus
    error: Optional[str] = None


@dataclass
class JobHandle:
    job_id: str
    task: asyncio.Task
    completion: asyncio.Future  # resolves to a JobOutcome


class JobManager:
    """
    Runs PDF generation jobs as asyncio tasks in this process.

    submit() persists a queued record, creates the job's completion future
    and spawns its task before returning, so a caller that waits on the id
    it got back can never miss the terminal transition.
    """

    def __init__(self, store: JobStore, storage: StorageAdapter, renderer: Renderer,
                 staging_dir: str, namespace: str = "pigen"):
        self.store = store
        self.storage = storage
        self.renderer = renderer
        self.staging_dir = staging_dir
        self.namespace = namespace
        self._handles: Dict[str, JobHandle] = {}

    @staticmethod
    def new_job_id() -> str:
        return f"job_{uuid4().hex}"

    def storage_key(self, job_id: str) -> str:
        return f"{self.namespace}/{job_id}.pdf"

    async def submit(self, subject_id: str, tenant_id: Optional[str] = None,
                     requester: Optional[dict] = None, options: Optional[Dict[str, Any]] = None) -> str:
        if not subject_id or not str(subject_id).strip():
            raise InvalidRequest("subjectId is required", field="subjectId")

        job_id = self.new_job_id()
        await asyncio.to_thread(self.store.create, job_id, str(subject_id), tenant_id)

        completion = asyncio.get_running_loop().create_future()
        task = asyncio.create_task(
            self._run(job_id, str(subject_id), tenant_id, requester, options or {}, completion),
            name=f"pigen:{job_id}",
        )
        self._handles[job_id] = JobHandle(job_id, task, completion)
        task.add_done_callback(lambda _t: self._handles.pop(job_id, None))

        logger.info("job %s queued for contrato %s", job_id, subject_id, extra={"job_id": job_id})
        return job_id

    async def get_job(self, job_id: str) -> Optional[Job]:
        return await asyncio.to_thread(self.store.get, job_id)

    async def wait(self, job_id: str) -> Optional[JobOutcome]:
        """
        Wait for the job's terminal transition. Jobs that are no longer in
        flight, or whose completion was cancelled at shutdown, answer from
        the store; None means the id is unknown.
        """
        handle = self._handles.get(job_id)
        if handle is not None:
            try:
                return await asyncio.shield(handle.completion)
            except asyncio.CancelledError:
                if not handle.completion.cancelled():
                    raise
        job = await self.get_job(job_id)
        return JobOutcome(JobStatus(job.status), job.error) if job else None

    def is_active(self, job_id: str) -> bool:
        handle = self._handles.get(job_id)
        return handle is not None and not handle.task.done()

    def active_jobs(self) -> List[str]:
        return [job_id for job_id, h in self._handles.items() if not h.task.done()]

    async def shutdown(self, timeout: float = 30.0):
        handles = [h for h in self._handles.values() if not h.task.done()]
        if not handles:
            return
        logger.info("waiting for %d running job(s)", len(handles))
        _, pending = await asyncio.wait([h.task for h in handles], timeout=timeout)
        for handle in handles:
            if handle.task in pending:
                logger.warning("job %s still running at shutdown, cancelling", handle.job_id,
                               extra={"job_id": handle.job_id})
                handle.task.cancel()
                handle.completion.cancel()

    async def _render(self, subject_id, tenant_id, requester, options) -> bytes:
        try:
            if inspect.iscoroutinefunction(self.renderer.render):
                data = await self.renderer.render(subject_id, tenant_id, requester, options)
            else:
                data = await asyncio.to_thread(self.renderer.render, subject_id, tenant_id, requester, options)
        except RenderFailure:
            raise
        except Exception as e:
            raise RenderFailure(str(e)) from e
        if not isinstance(data, (bytes, bytearray)) or not data:
            raise RenderFailure("renderer returned no document")
        return bytes(data)

    async def _stage(self, job_id: str, data: bytes) -> str:
        path = os.path.join(self.staging_dir, f"{job_id}.pdf")
        try:
            os.makedirs(self.staging_dir, exist_ok=True)
            async with aiofiles.open(path, "wb") as out_file:
                await out_file.write(data)
        except OSError as e:
            raise StageFailure(str(e), path=path) from e
        return path

    async def _upload(self, job_id: str, local_path: str) -> Optional[str]:
        key = self.storage_key(job_id)
        try:
            result = await self.storage.upload(local_path, key, PDF_CONTENT_TYPE)
        except Exception as e:
            logger.warning("upload of %s failed, keeping local file: %s", key, e, extra={"job_id": job_id})
            return None
        return result.url or None

    async def _run(self, job_id: str, subject_id: str, tenant_id: Optional[str],
                   requester: Optional[dict], options: Dict[str, Any], completion: asyncio.Future):
        extra = {"job_id": job_id}
        try:
            await asyncio.to_thread(self.store.transition, job_id, JobStatus.RUNNING)

            data = await self._render(subject_id, tenant_id, requester, options)
            local_path = await self._stage(job_id, data)
            result_url = await self._upload(job_id, local_path)

            await asyncio.to_thread(
                self.store.transition, job_id, JobStatus.DONE,
                result_path=local_path, result_url=result_url,
            )
        except Exception as e:
            logger.error("job %s failed: %s", job_id, e, extra=extra)
            try:
                await asyncio.to_thread(self.store.transition, job_id, JobStatus.FAILED, error=str(e))
            except Exception as save_err:
                logger.error("could not persist failure of job %s: %s", job_id, save_err, extra=extra)
            _resolve(completion, JobOutcome(JobStatus.FAILED, str(e)))
            return

        _resolve(completion, JobOutcome(JobStatus.DONE))
        logger.info("job %s done: %s", job_id, local_path, extra=extra)


def _resolve(completion: asyncio.Future, outcome: JobOutcome):
    if not completion.done():
        completion.set_result(outcome)
