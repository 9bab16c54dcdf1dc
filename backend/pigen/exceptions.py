# backend/pigen/exceptions.py
from typing import Any, Dict, Optional


class PigenError(Exception):
    """Base error carrying a code and the HTTP status it maps to."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "PIGEN_ERROR",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details: Dict[str, Any] = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "error": self.message, "details": self.details}


class InvalidRequest(PigenError):
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            code="INVALID_REQUEST",
            status_code=400,
            details={"field": field} if field else {},
        )


class RenderFailure(PigenError):
    def __init__(self, message: str, **details: Any):
        super().__init__(message, code="RENDER_FAILURE", details=details)


class StageFailure(PigenError):
    def __init__(self, message: str, **details: Any):
        super().__init__(message, code="STAGE_FAILURE", details=details)


class UploadFailure(PigenError):
    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message, code="UPLOAD_FAILURE", details={"key": key} if key else {})


class PersistenceFailure(PigenError):
    def __init__(self, message: str, job_id: Optional[str] = None):
        super().__init__(message, code="PERSISTENCE_FAILURE", details={"job_id": job_id})


class JobNotFound(PigenError):
    def __init__(self, job_id: str):
        super().__init__("job not found", code="JOB_NOT_FOUND", status_code=404, details={"job_id": job_id})


class InvalidTransition(PigenError):
    def __init__(self, job_id: str, current: str, target: str):
        super().__init__(
            f"job {job_id}: cannot move from {current} to {target}",
            code="INVALID_TRANSITION",
            status_code=409,
            details={"job_id": job_id, "from": current, "to": target},
        )
