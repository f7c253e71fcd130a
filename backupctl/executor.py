"""Job execution: file selection and archiving."""

import fnmatch
import importlib
import logging
import os
import shutil
import subprocess
import tarfile
import tempfile
import zipfile
from typing import List, Optional, Tuple
from .errors import ArchiveError, ArchiverUnavailable
from .models import (
    ARCHIVE_EXTENSIONS,
    ArchiveType,
    CompressionLevel,
    GlobalSettings,
    JobOutcome,
    JobSettings,
    JobState,
)

COMPRESSION_LEVELS = {
    CompressionLevel.NONE: 0,
    CompressionLevel.FAST: 1,
    CompressionLevel.LOW: 3,
    CompressionLevel.NORMAL: 5,
    CompressionLevel.HIGH: 7,
    CompressionLevel.ULTRA: 9,
}

# Longest suffixes first so ".tar.gz" wins over ".tar"
SUFFIX_TYPES = [
    (".tar.bz2", ArchiveType.BZIP2),
    (".tar.gz", ArchiveType.GZIP),
    (".tar.xz", ArchiveType.XZ),
    (".tbz2", ArchiveType.BZIP2),
    (".tgz", ArchiveType.GZIP),
    (".txz", ArchiveType.XZ),
    (".tar", ArchiveType.TAR),
    (".zip", ArchiveType.ZIP),
    (".7z", ArchiveType.SEVEN_ZIP),
]

SEVEN_ZIP_EXECUTABLES = ["7z", "7za", "7zz"]

BACKEND_MODULES = {
    ArchiveType.ZIP: "zlib",
    ArchiveType.GZIP: "zlib",
    ArchiveType.BZIP2: "bz2",
    ArchiveType.XZ: "lzma",
}

SourceFile = Tuple[str, str]  # (absolute path, path relative to the source)


def find_seven_zip() -> Optional[str]:
    for name in SEVEN_ZIP_EXECUTABLES:
        path = shutil.which(name)
        if path:
            return path
    return None


def check_backend(archive_type: ArchiveType) -> None:
    """Raise ArchiverUnavailable if archive_type cannot be written here."""
    if archive_type == ArchiveType.SEVEN_ZIP:
        if find_seven_zip() is None:
            raise ArchiverUnavailable(
                f"SevenZip archives need one of {', '.join(SEVEN_ZIP_EXECUTABLES)} on PATH"
            )
        return
    module = BACKEND_MODULES.get(archive_type)
    if module is None:
        return
    try:
        importlib.import_module(module)
    except ImportError as e:
        raise ArchiverUnavailable(f"{archive_type.value} archives need the '{module}' module: {e}") from e


def infer_archive_type(archive_name: str) -> Optional[ArchiveType]:
    lowered = archive_name.lower()
    for suffix, archive_type in SUFFIX_TYPES:
        if lowered.endswith(suffix):
            return archive_type
    return None


def matches_any(file_name: str, patterns) -> bool:
    """Match a file name against extension patterns, ignoring case.

    Patterns with wildcards are fnmatch patterns ("*.bak", "log_*");
    anything else is an extension, with or without the dot ("bak", ".bak").
    """
    name = file_name.lower()
    for pattern in patterns:
        pattern = pattern.lower()
        if any(c in pattern for c in "*?["):
            if fnmatch.fnmatch(name, pattern):
                return True
        else:
            extension = pattern if pattern.startswith(".") else "." + pattern
            if name.endswith(extension):
                return True
    return False


class JobExecutor:
    """Runs resolved jobs: selects files and writes one archive per job."""

    def __init__(self, settings: GlobalSettings):
        self.settings = settings

    def archive_target(self, job: JobSettings) -> Tuple[ArchiveType, str]:
        """Archive type and full output path for a job."""
        archive_type = self.settings.archive_type
        archive_ext = self.settings.archive_ext
        if archive_type == ArchiveType.AUTO:
            inferred = infer_archive_type(job.archive_name)
            if inferred is None:
                archive_type = ArchiveType.ZIP
                archive_ext = ARCHIVE_EXTENSIONS[ArchiveType.ZIP]
            else:
                archive_type = inferred
                archive_ext = ""
        return archive_type, job.archive_path(archive_ext)

    def copies_raw(self, job: JobSettings) -> bool:
        """Uncompressed jobs copy files as-is unless an archive type was configured."""
        return job.compression_level == CompressionLevel.NONE and not self.settings.archive_type_explicit

    def output_path(self, job: JobSettings) -> str:
        if self.copies_raw(job):
            return job.destination_path + job.archive_name + os.sep
        return self.archive_target(job)[1]

    def select_files(self, job: JobSettings, skip: Optional[str] = None) -> List[SourceFile]:
        """Files under the job's source path that pass its extension filters."""
        selected = []
        skip = os.path.abspath(skip) if skip else None
        for root, dirs, files in os.walk(job.source_path):
            dirs.sort()
            if skip:
                dirs[:] = [d for d in dirs if os.path.abspath(os.path.join(root, d)) != skip.rstrip(os.sep)]
            for name in sorted(files):
                if job.include_extension and not matches_any(name, job.include_extension):
                    continue
                if matches_any(name, job.exclude_extension):
                    continue
                path = os.path.join(root, name)
                if skip and os.path.abspath(path) == skip:
                    continue
                selected.append((path, os.path.relpath(path, job.source_path)))
        return selected

    def execute(self, job: JobSettings, logger: logging.Logger) -> JobOutcome:
        """Execute a single job, logging to the job's own logger."""
        outcome = JobOutcome(name=job.name)
        output = self.output_path(job)
        outcome.archive_path = output
        logger.info(f"[{job.name}] Source: {job.source_path}")
        logger.info(f"[{job.name}] Output: {output}")

        try:
            os.makedirs(job.destination_path, exist_ok=True)
            files = self.select_files(job, skip=output)
            outcome.files = len(files)
            logger.info(f"[{job.name}] {len(files)} file(s) selected")
            if not files:
                logger.warning(f"[{job.name}] No files matched; nothing to archive")
                outcome.state = JobState.COMPLETED
                return outcome

            if self.copies_raw(job):
                self._copy_raw(files, output, logger)
            else:
                archive_type, _ = self.archive_target(job)
                level = COMPRESSION_LEVELS[job.compression_level]
                self._write_archive(archive_type, level, files, output, job.source_path, logger)

            outcome.state = JobState.COMPLETED
            logger.info(f"[{job.name}] Completed")
        except (OSError, ArchiveError, ArchiverUnavailable, tarfile.TarError, zipfile.BadZipFile) as e:
            outcome.state = JobState.FAILED
            outcome.error_message = str(e)
            logger.error(f"[{job.name}] Failed: {e}")
        return outcome

    def _copy_raw(self, files: List[SourceFile], target_dir: str, logger: logging.Logger) -> None:
        for path, relative in files:
            target = os.path.join(target_dir, relative)
            os.makedirs(os.path.dirname(target), exist_ok=True)
            shutil.copy2(path, target)
            logger.debug(f"Copied {relative}")

    def _write_archive(
        self,
        archive_type: ArchiveType,
        level: int,
        files: List[SourceFile],
        archive_path: str,
        source_path: str,
        logger: logging.Logger,
    ) -> None:
        try:
            if archive_type == ArchiveType.ZIP:
                self._write_zip(level, files, archive_path, logger)
            elif archive_type == ArchiveType.SEVEN_ZIP:
                self._write_seven_zip(level, files, archive_path, source_path, logger)
            else:
                self._write_tar(archive_type, level, files, archive_path, logger)
        except Exception:
            if os.path.isfile(archive_path):
                os.remove(archive_path)
            raise

    def _write_zip(self, level: int, files: List[SourceFile], archive_path: str, logger: logging.Logger) -> None:
        if level == 0:
            archive = zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_STORED)
        else:
            archive = zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=level)
        with archive:
            for path, relative in files:
                archive.write(path, arcname=relative)
                logger.debug(f"Added {relative}")

    def _write_tar(
        self, archive_type: ArchiveType, level: int, files: List[SourceFile], archive_path: str, logger: logging.Logger
    ) -> None:
        if archive_type == ArchiveType.GZIP:
            archive = tarfile.open(archive_path, "w:gz", compresslevel=level)
        elif archive_type == ArchiveType.BZIP2:
            archive = tarfile.open(archive_path, "w:bz2", compresslevel=max(level, 1))
        elif archive_type == ArchiveType.XZ:
            archive = tarfile.open(archive_path, "w:xz", preset=level)
        elif archive_type == ArchiveType.TAR:
            archive = tarfile.open(archive_path, "w")
        else:
            raise ArchiveError(f"Unsupported archive type {archive_type.value}")
        with archive:
            for path, relative in files:
                archive.add(path, arcname=relative, recursive=False)
                logger.debug(f"Added {relative}")

    def _write_seven_zip(
        self, level: int, files: List[SourceFile], archive_path: str, source_path: str, logger: logging.Logger
    ) -> None:
        executable = find_seven_zip()
        if executable is None:
            raise ArchiverUnavailable("No 7z executable found on PATH")

        fd, list_file = tempfile.mkstemp(prefix="backupctl_", suffix=".lst", text=True)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write("\n".join(relative for _, relative in files) + "\n")
            cmd = [executable, "a", "-t7z", f"-mx={level}", "-y", "-bd", os.path.abspath(archive_path), f"@{list_file}"]
            logger.debug(f"Running {' '.join(cmd)}")
            result = subprocess.run(cmd, cwd=source_path, capture_output=True, text=True)
            if result.returncode != 0:
                raise ArchiveError(result.stderr.strip() or f"7z exited with code {result.returncode}")
        finally:
            os.remove(list_file)
