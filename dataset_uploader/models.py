"""
Models for dataset_uploader.

Immutable dataclasses for staged files, per-file outcomes, batch results,
notifications and configuration.
"""
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Tuple
import os


class ErrorKind(Enum):
    """Reason a single file upload failed."""
    NETWORK_TIMEOUT = "network_timeout"
    NETWORK_ERROR = "network_error"
    REJECTED = "rejected"
    SERVER_ERROR = "server_error"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class UploadStatus(Enum):
    """Terminal status of a single file upload."""
    SUCCESS = "success"
    FAILED = "failed"


class NotificationKind(Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class StagedFile:
    """A file the user has staged but not uploaded yet."""
    name: str
    size_bytes: int
    raw_handle: Any = field(default=None, repr=False)

    @classmethod
    def from_path(cls, path) -> "StagedFile":
        path = Path(path)
        return cls(name=path.name, size_bytes=path.stat().st_size, raw_handle=path)

    @classmethod
    def from_bytes(cls, name: str, data: bytes) -> "StagedFile":
        return cls(name=name, size_bytes=len(data), raw_handle=data)


@dataclass(frozen=True)
class UploadOutcome:
    """Immutable result of one file's upload attempt."""
    file: StagedFile
    status: UploadStatus
    url: Optional[str] = None
    reason: Optional[ErrorKind] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == UploadStatus.SUCCESS

    @property
    def filename(self) -> str:
        return self.file.name

    @classmethod
    def ok(cls, file: StagedFile, url: str):
        return cls(file=file, status=UploadStatus.SUCCESS, url=url)

    @classmethod
    def fail(cls, file: StagedFile, reason: ErrorKind, error: Optional[str] = None):
        return cls(
            file=file,
            status=UploadStatus.FAILED,
            reason=reason,
            error=error or reason.value,
        )


@dataclass(frozen=True)
class BatchResult:
    """Outcomes of one dispatch run, ordered like the input files."""
    outcomes: Tuple[UploadOutcome, ...]

    @property
    def succeeded_urls(self) -> Tuple[str, ...]:
        return tuple(o.url for o in self.outcomes if o.success)

    @property
    def failed(self) -> Tuple[UploadOutcome, ...]:
        return tuple(o for o in self.outcomes if not o.success)

    @property
    def all_success(self) -> bool:
        return bool(self.outcomes) and not self.failed

    @property
    def all_failed(self) -> bool:
        return bool(self.outcomes) and len(self.failed) == len(self.outcomes)

    @property
    def is_partial(self) -> bool:
        return bool(self.failed) and not self.all_failed

    def __len__(self) -> int:
        return len(self.outcomes)


@dataclass(frozen=True)
class Notification:
    """
    Transient user-facing message.

    A notification with ``id == 0`` has not been published yet; the session
    assigns a monotonic id and an expiry when it shows it.
    """
    message: str
    kind: NotificationKind
    id: int = 0
    expires_at: Optional[float] = None

    @classmethod
    def success(cls, message: str):
        return cls(message=message, kind=NotificationKind.SUCCESS)

    @classmethod
    def error(cls, message: str):
        return cls(message=message, kind=NotificationKind.ERROR)

    @property
    def is_error(self) -> bool:
        return self.kind == NotificationKind.ERROR

    def same_content(self, other: "Notification") -> bool:
        return self.message == other.message and self.kind == other.kind


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


@dataclass(frozen=True)
class UploaderConfig:
    """Immutable configuration for upload sessions."""
    storage_url: Optional[str] = None
    bucket: str = "publicFiles"
    concurrency_limit: int = 3
    notification_ttl: float = 3.0  # seconds
    accepted_extensions: Tuple[str, ...] = (".csv",)
    request_timeout: float = 60.0
    max_retries: int = 3

    @classmethod
    def from_env(cls, **overrides) -> "UploaderConfig":
        """
        Build configuration from environment variables.

        Keyword overrides that are not None win over the environment.
        """
        accept = os.getenv("UPLOADER_ACCEPT")
        values = {
            "storage_url": os.getenv("STORAGE_API_URL"),
            "bucket": os.getenv("STORAGE_BUCKET") or cls.bucket,
            "concurrency_limit": _env_int("UPLOADER_MAX_PARALLEL", cls.concurrency_limit),
            "notification_ttl": _env_float("UPLOADER_NOTIFICATION_TTL", cls.notification_ttl),
            "request_timeout": _env_float("UPLOADER_REQUEST_TIMEOUT", cls.request_timeout),
        }
        if accept:
            values["accepted_extensions"] = tuple(
                ext.strip() for ext in accept.split(",") if ext.strip()
            )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
