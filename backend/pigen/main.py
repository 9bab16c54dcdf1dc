# backend/pigen/main.py
import logging
import os
from typing import Any, Dict, Optional

from fastapi import FastAPI, Header, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse
from pydantic import BaseModel, Field

from .config import Settings
from .db import init_db, make_engine
from .exceptions import InvalidRequest, JobNotFound, PigenError
from .jobs import JobManager
from .logging_config import setup_logging
from .models import JobStatus
from .renderer import DEFAULT_REQUESTER, JsonContractSource, SpreadsheetPdfRenderer
from .storage import StorageAdapter
from .store import JobStore

logger = logging.getLogger(__name__)


class GenerateRequest(BaseModel):
    subjectId: Optional[str] = None
    background: bool = True
    options: Dict[str, Any] = Field(default_factory=dict)


def build_manager(settings: Settings) -> JobManager:
    engine = make_engine(settings.database_url)
    renderer = SpreadsheetPdfRenderer(
        JsonContractSource(settings.contracts_dir),
        template_path=settings.template_path,
        soffice_bin=settings.soffice_bin,
        timeout_ms=settings.convert_timeout_ms,
    )
    return JobManager(
        store=JobStore(engine),
        storage=StorageAdapter(settings.s3, settings.fallback_dir),
        renderer=renderer,
        staging_dir=settings.staging_dir,
        namespace=settings.storage_namespace,
    )


def create_app(settings: Optional[Settings] = None, manager: Optional[JobManager] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    manager = manager or build_manager(settings)

    app = FastAPI(title="PI contract PDF generator")
    app.state.settings = settings
    app.state.jobs = manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    def startup():
        setup_logging(settings.log_level, settings.log_format)
        settings.ensure_dirs()
        init_db(manager.store.engine)
        logger.info("pigen ready (remote storage: %s)", manager.storage.is_remote)

    @app.on_event("shutdown")
    async def shutdown():
        await manager.shutdown()

    @app.exception_handler(PigenError)
    async def pigen_error_handler(request: Request, exc: PigenError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.post("/generate")
    async def generate(
        req: Optional[GenerateRequest] = None,
        x_tenant_id: Optional[str] = Header(default=None),
        x_user: Optional[str] = Header(default=None),
    ):
        req = req or GenerateRequest()
        if not req.subjectId or not req.subjectId.strip():
            raise InvalidRequest("subjectId is required", field="subjectId")

        requester = {"nome": x_user} if x_user else dict(DEFAULT_REQUESTER)
        job_id = await manager.submit(req.subjectId, x_tenant_id, requester, req.options)

        if req.background:
            return JSONResponse(status_code=202, content={"ok": True, "jobId": job_id})

        outcome = await manager.wait(job_id)
        job = await manager.get_job(job_id)

        if job and job.status == JobStatus.DONE:
            if job.result_path and os.path.exists(job.result_path):
                return FileResponse(
                    path=job.result_path,
                    filename=f"{job_id}.pdf",
                    media_type="application/pdf",
                )
            if job.result_url:
                return RedirectResponse(job.result_url, status_code=307)
            return JSONResponse(status_code=500, content={"ok": False, "error": "result missing"})

        # the record can lag behind the outcome when the failure write itself failed
        error = (job.error if job else None) or (outcome.error if outcome else None) or "unknown"
        return JSONResponse(status_code=500, content={"ok": False, "error": error})

    @app.get("/status/{job_id}")
    async def get_status(job_id: str):
        job = await manager.get_job(job_id)
        if not job:
            raise JobNotFound(job_id)
        return {"ok": True, "job": job.snapshot()}

    @app.get("/result/{job_id}")
    async def result(job_id: str):
        job = await manager.get_job(job_id)
        if not job:
            raise JobNotFound(job_id)
        if job.status != JobStatus.DONE:
            return JSONResponse(status_code=404, content={"error": "result not ready", "status": JobStatus(job.status).value})

        if job.result_path and os.path.exists(job.result_path):
            return FileResponse(
                path=job.result_path,
                filename=f"{job_id}.pdf",
                media_type="application/pdf",
            )
        if job.result_url:
            return RedirectResponse(job.result_url, status_code=307)
        return JSONResponse(status_code=404, content={"error": "result missing"})

    @app.websocket("/ws/jobs/{job_id}")
    async def job_progress(websocket: WebSocket, job_id: str):
        await websocket.accept()
        try:
            job = await manager.get_job(job_id)
            if not job:
                await websocket.send_json({"error": "job not found"})
                await websocket.close(code=1008)
                return

            await websocket.send_json(job.snapshot())
            if not JobStatus(job.status).terminal:
                await manager.wait(job_id)
                job = await manager.get_job(job_id)
                await websocket.send_json(job.snapshot())
            await websocket.close()
        except WebSocketDisconnect:
            logger.debug("progress socket for %s closed by client", job_id)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "activeJobs": len(manager.active_jobs()),
            "remoteStorage": manager.storage.is_remote,
        }

    return app


app = create_app()
