# backend/pigen/logging_config.py
import json
import logging
from datetime import datetime, timezone
from typing import Optional

_STANDARD_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'exc_info', 'exc_text',
    'stack_info', 'taskName', 'message',
}


class JsonFormatter(logging.Formatter):
    """JSON log lines with the job id and any other `extra` fields"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "job_id": getattr(record, "job_id", None),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and key not in log_entry:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class TextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        job_id = getattr(record, "job_id", None)
        line = super().format(record)
        return f"{line} [job={job_id}]" if job_id else line


def setup_logging(level: str = "INFO", fmt: str = "text", logger_name: Optional[str] = None):
    """Install a single stream handler on the root (or named) logger"""
    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(TextFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    logger = logging.getLogger(logger_name)
    logger.handlers = [h for h in logger.handlers if not getattr(h, "_pigen", False)]
    handler._pigen = True
    logger.addHandler(handler)
    logger.setLevel(level.upper())
    return logger
