"""Settings resolution: global defaults merged into every job."""

import logging
import os
from datetime import date
from enum import Enum
from typing import Any, Dict, FrozenSet, List, NamedTuple, Optional, Type
from . import diagnostics as fields
from .diagnostics import DiagnosticReport
from .loader import SettingsTree, lookup
from .models import (
    ARCHIVE_EXTENSIONS,
    ArchiveType,
    CompressionLevel,
    DiagnosticCode,
    FieldResult,
    FieldStatus,
    GlobalSettings,
    JobSettings,
)
from .paths import directory_exists, normalize
from .templating import date_stamp, default_archive_name, expand_archive_name

logger = logging.getLogger(__name__)

DEFAULT_LOG_EXTENSION = "log"
DEFAULT_DELIMITER = "_"
DEFAULT_COMPRESSION = CompressionLevel.NONE
DEFAULT_ARCHIVE_TYPE = ArchiveType.ZIP

# Settings keys as they appear in the settings file
KEY_SOURCE_PATH = "sourcePath"
KEY_DESTINATION_PATH = "destinationPath"
KEY_LOG_PATH = "logPath"
KEY_LOG_FILE_NAME = "logFileName"
KEY_LOG_EXTENSION = "logExtension"
KEY_COMPRESSION_LEVEL = "compressionLevel"
KEY_ARCHIVE_TYPE = "archiveType"
KEY_DELIMITER = "fileNameDelimiter"
KEY_INCLUDE_EXTENSION = "includeExtension"
KEY_EXCLUDE_EXTENSION = "excludeExtension"
KEY_ARCHIVE_NAME = "archiveName"


class ResolutionResult(NamedTuple):
    global_settings: GlobalSettings
    jobs: List[JobSettings]
    report: DiagnosticReport

    def executable_jobs(self) -> List[JobSettings]:
        return [job for job in self.jobs if self.report.is_executable(job.name)]


def parse_extensions(value: Any) -> FrozenSet[str]:
    """Split a comma separated string (or list of them) into trimmed patterns."""
    if value is None:
        return frozenset()
    items = value if isinstance(value, list) else [value]
    patterns = set()
    for item in items:
        for part in str(item).split(","):
            part = part.strip()
            if part:
                patterns.add(part)
    return frozenset(patterns)


def _text(section: Dict[str, Any], key: str) -> Optional[str]:
    """Trimmed string value, or None when the key is absent or null."""
    value = lookup(section, key)
    if value is None:
        return None
    return str(value).strip()


def _path_text(section: Dict[str, Any], key: str) -> Optional[str]:
    value = _text(section, key)
    return value or None


def _configured(report: DiagnosticReport, field: str) -> bool:
    """True if the global field was set in the settings file, not defaulted."""
    result = report.global_field(field)
    return result is not None and result.status == FieldStatus.OK


def _parse_enum(enum_cls: Type[Enum], raw: Optional[str], where: str) -> Optional[Enum]:
    """Match an enum member by value, ignoring case. Unknown values give None."""
    if not raw:
        return None
    for member in enum_cls:
        if member.value.lower() == raw.lower():
            return member
    choices = ", ".join(member.value for member in enum_cls)
    logger.warning(f"Ignoring unknown {enum_cls.__name__} '{raw}' in {where} (expected one of: {choices})")
    return None


class SettingsResolver:
    """Resolves a SettingsTree into global settings, jobs and diagnostics.

    Resolution runs in two phases: the global section becomes an immutable
    GlobalSettings snapshot, then each job is folded against that snapshot
    in file order. Only the diagnostic report is shared between jobs: when
    a job inherits a global path that no longer exists, the global entry is
    downgraded and every later job sees it as failed.
    """

    def __init__(self, today: Optional[date] = None, cwd: Optional[str] = None):
        self.today = today or date.today()
        self.cwd = cwd or os.getcwd()

    def resolve(self, tree: SettingsTree) -> ResolutionResult:
        report = DiagnosticReport()
        settings = self.resolve_global(tree.global_settings, report)
        jobs = [self.resolve_job(name, section, settings, report) for name, section in tree.jobs]
        return ResolutionResult(settings, jobs, report)

    def resolve_global(self, section: Dict[str, Any], report: DiagnosticReport) -> GlobalSettings:
        """Resolve the global section, recording one diagnostic per field."""
        source_path = self._resolve_global_path(
            section, KEY_SOURCE_PATH, fields.SOURCE_PATH, DiagnosticCode.SOURCE_PATH, report
        )
        destination_path = self._resolve_global_path(
            section, KEY_DESTINATION_PATH, fields.DESTINATION_PATH, DiagnosticCode.DESTINATION_PATH, report
        )

        raw_log_path = _path_text(section, KEY_LOG_PATH)
        if raw_log_path is None:
            log_path = normalize(self.cwd)
            report.record_global(fields.LOG_PATH, FieldResult.defaulted(log_path))
        else:
            log_path = normalize(raw_log_path)
            if directory_exists(log_path):
                report.record_global(fields.LOG_PATH, FieldResult.ok(log_path))
            else:
                logger.warning(f"Log path {log_path} does not exist")
                report.record_global(fields.LOG_PATH, FieldResult.failed(DiagnosticCode.LOG_PATH_NOT_FOUND))

        log_file_name = _text(section, KEY_LOG_FILE_NAME) or None
        if log_file_name is None:
            report.record_global(fields.LOG_FILE_NAME, FieldResult.defaulted(None))
        else:
            report.record_global(fields.LOG_FILE_NAME, FieldResult.ok(log_file_name))

        log_extension = _text(section, KEY_LOG_EXTENSION)
        if log_extension is None:
            log_extension = DEFAULT_LOG_EXTENSION
            report.record_global(fields.LOG_EXTENSION, FieldResult.defaulted(log_extension))
        else:
            log_extension = log_extension.lstrip(".")
            report.record_global(fields.LOG_EXTENSION, FieldResult.ok(log_extension))

        compression_level = _parse_enum(
            CompressionLevel, _text(section, KEY_COMPRESSION_LEVEL), "global settings"
        )
        if compression_level is None:
            compression_level = DEFAULT_COMPRESSION
            report.record_global(fields.COMPRESSION_LEVEL, FieldResult.defaulted(compression_level))
        else:
            report.record_global(fields.COMPRESSION_LEVEL, FieldResult.ok(compression_level))

        archive_type = _parse_enum(ArchiveType, _text(section, KEY_ARCHIVE_TYPE), "global settings")
        archive_type_explicit = archive_type is not None
        if archive_type is None:
            archive_type = DEFAULT_ARCHIVE_TYPE
            report.record_global(fields.ARCHIVE_TYPE, FieldResult.defaulted(archive_type))
        else:
            report.record_global(fields.ARCHIVE_TYPE, FieldResult.ok(archive_type))

        delimiter = _text(section, KEY_DELIMITER)
        if delimiter is None:
            delimiter = DEFAULT_DELIMITER
            report.record_global(fields.FILE_NAME_DELIMITER, FieldResult.defaulted(delimiter))
        else:
            report.record_global(fields.FILE_NAME_DELIMITER, FieldResult.ok(delimiter))

        include_extension = self._resolve_global_extensions(
            section, KEY_INCLUDE_EXTENSION, fields.INCLUDE_EXTENSION, report
        )
        exclude_extension = self._resolve_global_extensions(
            section, KEY_EXCLUDE_EXTENSION, fields.EXCLUDE_EXTENSION, report
        )

        stamp = date_stamp(self.today)
        full_log_path = None
        if log_file_name is not None and report.global_succeeded(fields.LOG_PATH):
            full_log_path = f"{log_path}{log_file_name}{delimiter}{stamp}.{log_extension}"

        return GlobalSettings(
            source_path=source_path,
            destination_path=destination_path,
            log_path=log_path,
            log_file_name=log_file_name,
            log_extension=log_extension,
            compression_level=compression_level,
            archive_type=archive_type,
            archive_ext=ARCHIVE_EXTENSIONS[archive_type],
            archive_type_explicit=archive_type_explicit,
            file_name_delimiter=delimiter,
            include_extension=include_extension,
            exclude_extension=exclude_extension,
            full_log_path=full_log_path,
            run_date=self.today,
            date_stamp=stamp,
        )

    def resolve_job(
        self, name: str, section: Dict[str, Any], settings: GlobalSettings, report: DiagnosticReport
    ) -> JobSettings:
        """Resolve one job against the global snapshot."""
        source_path = self._resolve_job_path(
            name, section, KEY_SOURCE_PATH, fields.SOURCE_PATH, settings.source_path, report,
            missing=DiagnosticCode.JOB_SOURCE_PATH,
            not_found=DiagnosticCode.JOB_SOURCE_PATH_NOT_FOUND,
            global_not_found=DiagnosticCode.SOURCE_PATH_NOT_FOUND,
        )
        destination_path = self._resolve_job_path(
            name, section, KEY_DESTINATION_PATH, fields.DESTINATION_PATH, settings.destination_path, report,
            missing=DiagnosticCode.JOB_DESTINATION_PATH,
            not_found=DiagnosticCode.JOB_DESTINATION_PATH_NOT_FOUND,
            global_not_found=DiagnosticCode.DESTINATION_PATH_NOT_FOUND,
            must_exist=False,
        )
        include_extension = self._resolve_job_extensions(
            name, section, KEY_INCLUDE_EXTENSION, fields.INCLUDE_EXTENSION, settings.include_extension, report
        )
        exclude_extension = self._resolve_job_extensions(
            name, section, KEY_EXCLUDE_EXTENSION, fields.EXCLUDE_EXTENSION, settings.exclude_extension, report
        )

        compression_level = _parse_enum(
            CompressionLevel, _text(section, KEY_COMPRESSION_LEVEL), f"job '{name}'"
        )
        if compression_level is not None:
            result = FieldResult.ok(compression_level)
        elif _configured(report, fields.COMPRESSION_LEVEL):
            result = FieldResult.inherited(settings.compression_level)
        else:
            result = FieldResult.defaulted(DEFAULT_COMPRESSION)
        report.record_job(name, fields.COMPRESSION_LEVEL, result)
        compression_level = result.value

        template = _text(section, KEY_ARCHIVE_NAME)
        archive_name = self.archive_name(name, template, settings)
        if template:
            report.record_job(name, fields.ARCHIVE_NAME, FieldResult.ok(archive_name))
        else:
            report.record_job(name, fields.ARCHIVE_NAME, FieldResult.defaulted(archive_name))

        return JobSettings(
            name=name,
            source_path=source_path,
            destination_path=destination_path,
            include_extension=include_extension,
            exclude_extension=exclude_extension,
            compression_level=compression_level,
            archive_name=archive_name,
        )

    @staticmethod
    def archive_name(job_name: str, template: Optional[str], settings: GlobalSettings) -> str:
        delimiter = settings.file_name_delimiter
        if not template:
            return default_archive_name(job_name, delimiter, settings.date_stamp)
        return expand_archive_name(template, job_name, delimiter, settings.date_stamp)

    def _resolve_global_path(
        self, section: Dict[str, Any], key: str, field: str, missing: DiagnosticCode, report: DiagnosticReport
    ) -> Optional[str]:
        raw = _path_text(section, key)
        if raw is None:
            report.record_global(field, FieldResult.failed(missing))
            return None
        path = normalize(raw)
        report.record_global(field, FieldResult.ok(path))
        return path

    def _resolve_global_extensions(
        self, section: Dict[str, Any], key: str, field: str, report: DiagnosticReport
    ) -> FrozenSet[str]:
        value = lookup(section, key)
        if value is None:
            report.record_global(field, FieldResult.defaulted(frozenset()))
            return frozenset()
        patterns = parse_extensions(value)
        report.record_global(field, FieldResult.ok(patterns))
        return patterns

    def _resolve_job_path(
        self,
        name: str,
        section: Dict[str, Any],
        key: str,
        field: str,
        global_value: Optional[str],
        report: DiagnosticReport,
        missing: DiagnosticCode,
        not_found: DiagnosticCode,
        global_not_found: DiagnosticCode,
        must_exist: bool = True,
    ) -> Optional[str]:
        """Job value, else the inherited global value, else a failure.

        must_exist only applies to a path the job sets itself. An inherited
        path is always checked, and a missing one downgrades the global.
        """
        raw = _path_text(section, key)
        if raw is not None:
            path = normalize(raw)
            if not must_exist or directory_exists(path):
                result = FieldResult.ok(path)
            else:
                logger.warning(f"Job '{name}': {field} {path} does not exist")
                result = FieldResult.failed(not_found)
        elif report.global_succeeded(field):
            if directory_exists(global_value):
                result = FieldResult.inherited(global_value)
            else:
                logger.warning(f"Job '{name}': global {field} {global_value} does not exist")
                report.record_global(field, FieldResult.failed(global_not_found))
                result = FieldResult.failed(not_found)
        else:
            result = FieldResult.failed(missing)
        report.record_job(name, field, result)
        return result.value

    def _resolve_job_extensions(
        self,
        name: str,
        section: Dict[str, Any],
        key: str,
        field: str,
        global_value: FrozenSet[str],
        report: DiagnosticReport,
    ) -> FrozenSet[str]:
        value = lookup(section, key)
        if value is not None:
            result = FieldResult.ok(parse_extensions(value))
        elif _configured(report, field):
            result = FieldResult.inherited(global_value)
        else:
            result = FieldResult.defaulted(frozenset())
        report.record_job(name, field, result)
        return result.value
