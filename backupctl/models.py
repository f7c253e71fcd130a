"""Data models for settings, jobs and error codes."""

from datetime import date
from enum import Enum, IntEnum
from typing import Any, FrozenSet, Optional, Union
from pydantic import BaseModel, Field


class ExitCode(IntEnum):
    """Process exit statuses for fatal startup failures."""
    SUCCESS = 0
    UNKNOWN_ERROR = -1
    MODULE_LOAD_FAILURE = -2
    SETTING_FILE_MISSING = -3
    DEPENDENCY_PROVIDER_MISSING = -4
    HOST_VERSION_MISMATCH = -5


class DiagnosticCode(IntEnum):
    """Per-field resolution failures recorded in the diagnostic report.

    Codes from -104 to -108 and the job log variants are reserved; no
    resolution rule assigns them.
    """
    SOURCE_PATH = -101
    DESTINATION_PATH = -102
    LOG_PATH = -103
    LOG_FILE_NAME = -104
    LOG_EXTENSION = -105
    COMPRESSION_LEVEL = -106
    INCLUDE_EXTENSION = -107
    EXCLUDE_EXTENSION = -108
    SOURCE_PATH_NOT_FOUND = -111
    DESTINATION_PATH_NOT_FOUND = -112
    LOG_PATH_NOT_FOUND = -113
    JOB_SOURCE_PATH = -201
    JOB_DESTINATION_PATH = -202
    JOB_LOG_PATH = -203
    JOB_LOG_FILE_NAME = -204
    JOB_LOG_EXTENSION = -205
    JOB_COMPRESSION_LEVEL = -206
    JOB_INCLUDE_EXTENSION = -207
    JOB_EXCLUDE_EXTENSION = -208
    JOB_SOURCE_PATH_NOT_FOUND = -211
    JOB_DESTINATION_PATH_NOT_FOUND = -212


CODE_DESCRIPTIONS = {
    ExitCode.SUCCESS: "normal completion",
    ExitCode.UNKNOWN_ERROR: "unclassified failure",
    ExitCode.MODULE_LOAD_FAILURE: "required archiving capability unavailable",
    ExitCode.SETTING_FILE_MISSING: "settings file missing or empty",
    ExitCode.DEPENDENCY_PROVIDER_MISSING: "dependency provider unavailable",
    ExitCode.HOST_VERSION_MISMATCH: "Python version below minimum supported",
    DiagnosticCode.SOURCE_PATH: "global source path missing",
    DiagnosticCode.DESTINATION_PATH: "global destination path missing",
    DiagnosticCode.LOG_PATH: "log path missing",
    DiagnosticCode.LOG_FILE_NAME: "reserved",
    DiagnosticCode.LOG_EXTENSION: "reserved",
    DiagnosticCode.COMPRESSION_LEVEL: "reserved",
    DiagnosticCode.INCLUDE_EXTENSION: "reserved",
    DiagnosticCode.EXCLUDE_EXTENSION: "reserved",
    DiagnosticCode.SOURCE_PATH_NOT_FOUND: "global source path not found",
    DiagnosticCode.DESTINATION_PATH_NOT_FOUND: "global destination path not found",
    DiagnosticCode.LOG_PATH_NOT_FOUND: "log path not found",
    DiagnosticCode.JOB_SOURCE_PATH: "job source path missing",
    DiagnosticCode.JOB_DESTINATION_PATH: "job destination path missing",
    DiagnosticCode.JOB_LOG_PATH: "reserved",
    DiagnosticCode.JOB_LOG_FILE_NAME: "reserved",
    DiagnosticCode.JOB_LOG_EXTENSION: "reserved",
    DiagnosticCode.JOB_COMPRESSION_LEVEL: "reserved",
    DiagnosticCode.JOB_INCLUDE_EXTENSION: "reserved",
    DiagnosticCode.JOB_EXCLUDE_EXTENSION: "reserved",
    DiagnosticCode.JOB_SOURCE_PATH_NOT_FOUND: "job source path not found",
    DiagnosticCode.JOB_DESTINATION_PATH_NOT_FOUND: "job destination path not found",
}


class CompressionLevel(str, Enum):
    """Archive compression levels."""
    NONE = "None"
    FAST = "Fast"
    LOW = "Low"
    NORMAL = "Normal"
    HIGH = "High"
    ULTRA = "Ultra"


class ArchiveType(str, Enum):
    """Archive formats a job can produce."""
    AUTO = "Auto"
    BZIP2 = "BZip2"
    GZIP = "GZip"
    SEVEN_ZIP = "SevenZip"
    TAR = "Tar"
    XZ = "XZ"
    ZIP = "Zip"


ARCHIVE_EXTENSIONS = {
    ArchiveType.AUTO: "",
    ArchiveType.BZIP2: ".tar.bz2",
    ArchiveType.GZIP: ".tar.gz",
    ArchiveType.SEVEN_ZIP: ".7z",
    ArchiveType.TAR: ".tar",
    ArchiveType.XZ: ".tar.xz",
    ArchiveType.ZIP: ".zip",
}


class FieldStatus(str, Enum):
    """How a field got its resolved value."""
    OK = "ok"
    INHERITED = "inherited"
    DEFAULTED = "defaulted"
    FAILED = "failed"


class FieldResult(BaseModel):
    """Outcome of resolving one field."""
    status: FieldStatus
    value: Any = None
    error: Optional[DiagnosticCode] = None

    class Config:
        frozen = True

    @classmethod
    def ok(cls, value: Any) -> "FieldResult":
        return cls(status=FieldStatus.OK, value=value)

    @classmethod
    def inherited(cls, value: Any) -> "FieldResult":
        return cls(status=FieldStatus.INHERITED, value=value)

    @classmethod
    def defaulted(cls, value: Any) -> "FieldResult":
        return cls(status=FieldStatus.DEFAULTED, value=value)

    @classmethod
    def failed(cls, error: DiagnosticCode) -> "FieldResult":
        return cls(status=FieldStatus.FAILED, error=error)

    @property
    def succeeded(self) -> bool:
        return self.status != FieldStatus.FAILED

    def as_diagnostic(self) -> Union[bool, int]:
        """Flat form used in logs: True, or the negative error code."""
        if self.succeeded:
            return True
        return int(self.error)


class GlobalSettings(BaseModel):
    """Resolved global settings shared by every job."""
    source_path: Optional[str] = None
    destination_path: Optional[str] = None
    log_path: str
    log_file_name: Optional[str] = None
    log_extension: str = "log"
    compression_level: CompressionLevel = CompressionLevel.NONE
    archive_type: ArchiveType = ArchiveType.ZIP
    archive_ext: str = ".zip"
    archive_type_explicit: bool = False
    file_name_delimiter: str = "_"
    include_extension: FrozenSet[str] = frozenset()
    exclude_extension: FrozenSet[str] = frozenset()
    full_log_path: Optional[str] = None
    run_date: date
    date_stamp: str

    class Config:
        frozen = True
        use_enum_values = False


class JobSettings(BaseModel):
    """A job after resolution.

    Fields are None when the matching diagnostic entry failed.
    """
    name: str
    source_path: Optional[str] = None
    destination_path: Optional[str] = None
    include_extension: FrozenSet[str] = frozenset()
    exclude_extension: FrozenSet[str] = frozenset()
    compression_level: Optional[CompressionLevel] = None
    archive_name: Optional[str] = None

    class Config:
        frozen = True
        use_enum_values = False

    def archive_path(self, archive_ext: str) -> Optional[str]:
        if self.destination_path is None or self.archive_name is None:
            return None
        return f"{self.destination_path}{self.archive_name}{archive_ext}"


class JobState(str, Enum):
    """Job execution outcomes."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class JobOutcome(BaseModel):
    """Result of handing one job to the executor."""
    name: str
    state: JobState = JobState.PENDING
    archive_path: Optional[str] = None
    files: int = 0
    error_message: Optional[str] = None
    errors: dict = Field(default_factory=dict)

    class Config:
        use_enum_values = False
