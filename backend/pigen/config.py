# backend/pigen/config.py
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
load_dotenv(Path(BASE_DIR).parent / ".env")


def env(name: str, default=None):
    val = os.getenv(name, default)
    if isinstance(val, str) and val.strip() == "":
        return default
    return val


def env_bool(name: str, default: bool = False) -> bool:
    return str(os.getenv(name, str(default))).lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class S3Settings:
    bucket: Optional[str] = None
    region: Optional[str] = None
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    endpoint_url: Optional[str] = None   # e.g. http://127.0.0.1:9000 for MinIO
    public_base_url: Optional[str] = None

    @property
    def configured(self) -> bool:
        if not self.bucket:
            return False
        if self.endpoint_url:
            return True
        return bool(self.region and self.access_key and self.secret_key)


@dataclass(frozen=True)
class Settings:
    data_dir: str
    database_url: str
    staging_dir: str
    fallback_dir: str
    contracts_dir: str
    storage_namespace: str = "pigen"
    template_path: Optional[str] = None
    soffice_bin: str = "soffice"
    convert_timeout_ms: int = 60000
    log_level: str = "INFO"
    log_format: str = "text"
    cors_origins: list = field(default_factory=lambda: ["*"])
    s3: S3Settings = field(default_factory=S3Settings)

    @classmethod
    def from_env(cls) -> "Settings":
        data_dir = env("PIGEN_DATA_DIR", os.path.join(BASE_DIR, "data"))
        origins = [o.strip() for o in env("CORS_ALLOWED_ORIGINS", "*").split(",") if o.strip()]
        return cls(
            data_dir=data_dir,
            database_url=env("DATABASE_URL", f"sqlite:///{os.path.join(data_dir, 'pigen.db')}"),
            staging_dir=env("PIGEN_STAGING_DIR", os.path.join(data_dir, "tmp")),
            fallback_dir=env("PIGEN_FALLBACK_DIR", os.path.join(data_dir, "uploads", "pigen")),
            contracts_dir=env("PIGEN_CONTRACTS_DIR", os.path.join(data_dir, "contratos")),
            storage_namespace=env("PIGEN_STORAGE_NAMESPACE", "pigen"),
            template_path=env("PIGEN_TEMPLATE_PATH"),
            soffice_bin=env("SOFFICE_BIN", "soffice"),
            convert_timeout_ms=int(env("PIGEN_CONVERT_TIMEOUT_MS", "60000")),
            log_level=env("LOG_LEVEL", "INFO"),
            log_format=env("LOG_FORMAT", "text"),
            cors_origins=origins or ["*"],
            s3=S3Settings(
                bucket=env("S3_BUCKET") or env("AWS_S3_BUCKET"),
                region=env("AWS_REGION") or env("AWS_DEFAULT_REGION"),
                access_key=env("AWS_ACCESS_KEY_ID"),
                secret_key=env("AWS_SECRET_ACCESS_KEY"),
                endpoint_url=env("S3_ENDPOINT_URL"),
                public_base_url=env("S3_PUBLIC_BASE_URL"),
            ),
        )

    def ensure_dirs(self):
        for d in (self.data_dir, self.staging_dir, self.fallback_dir):
            os.makedirs(d, exist_ok=True)
