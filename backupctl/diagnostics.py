"""Per-field resolution outcomes for the global section and every job."""

from typing import Dict, Iterator, List, Optional, Tuple, Union
from .models import DiagnosticCode, FieldResult

# Global fields in resolution order
SOURCE_PATH = "SourcePath"
DESTINATION_PATH = "DestinationPath"
LOG_PATH = "LogPath"
LOG_FILE_NAME = "LogFileName"
LOG_EXTENSION = "LogExtension"
COMPRESSION_LEVEL = "CompressionLevel"
ARCHIVE_TYPE = "ArchiveType"
FILE_NAME_DELIMITER = "FileNameDelimiter"
INCLUDE_EXTENSION = "IncludeExtension"
EXCLUDE_EXTENSION = "ExcludeExtension"
ARCHIVE_NAME = "ArchiveName"


class DiagnosticReport:
    """Ordered record of how every field was resolved.

    Global entries are keyed by field name ("SourcePath"); job entries are
    kept per job and flattened as "<job><Field>" ("FinancialSourcePath").
    """

    def __init__(self):
        self._global: Dict[str, FieldResult] = {}
        self._jobs: Dict[str, Dict[str, FieldResult]] = {}

    def record_global(self, field: str, result: FieldResult) -> None:
        self._global[field] = result

    def record_job(self, job: str, field: str, result: FieldResult) -> None:
        self._jobs.setdefault(job, {})[field] = result

    def global_field(self, field: str) -> Optional[FieldResult]:
        return self._global.get(field)

    def job_field(self, job: str, field: str) -> Optional[FieldResult]:
        return self._jobs.get(job, {}).get(field)

    def global_succeeded(self, field: str) -> bool:
        result = self._global.get(field)
        return result is not None and result.succeeded

    def job_names(self) -> List[str]:
        return list(self._jobs)

    def job_failures(self, job: str) -> Dict[str, DiagnosticCode]:
        """Failed fields of one job, keyed by flat name."""
        return {
            job + field: result.error
            for field, result in self._jobs.get(job, {}).items()
            if not result.succeeded
        }

    def is_executable(self, job: str) -> bool:
        """True if the job was resolved and none of its fields failed."""
        return job in self._jobs and not self.job_failures(job)

    def failures(self) -> Dict[str, DiagnosticCode]:
        return {key: result.error for key, result in self.items() if not result.succeeded}

    def items(self) -> Iterator[Tuple[str, FieldResult]]:
        yield from self._global.items()
        for job, fields in self._jobs.items():
            for field, result in fields.items():
                yield job + field, result

    def as_flat(self) -> Dict[str, Union[bool, int]]:
        """Map every field to True or its negative error code."""
        return {key: result.as_diagnostic() for key, result in self.items()}

    def __getitem__(self, key: str) -> FieldResult:
        for name, result in self.items():
            if name == key:
                return result
        raise KeyError(key)

    def __contains__(self, key: str) -> bool:
        return any(name == key for name, _ in self.items())

    def __len__(self) -> int:
        return len(self._global) + sum(len(fields) for fields in self._jobs.values())
