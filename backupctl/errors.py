"""Fatal errors that abort a run before any job is resolved."""

from .models import ExitCode


class BackupctlError(Exception):
    """Base error carrying the process exit code it maps to."""

    exit_code = ExitCode.UNKNOWN_ERROR

    def __init__(self, message: str, exit_code: ExitCode = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class SettingsFileMissing(BackupctlError):
    exit_code = ExitCode.SETTING_FILE_MISSING


class SettingsFileInvalid(BackupctlError):
    """Settings file could not be parsed or has the wrong structure."""
    exit_code = ExitCode.UNKNOWN_ERROR


class ArchiverUnavailable(BackupctlError):
    """Backend for the configured archive type is missing."""
    exit_code = ExitCode.MODULE_LOAD_FAILURE


class HostVersionError(BackupctlError):
    exit_code = ExitCode.HOST_VERSION_MISMATCH


class ArchiveError(BackupctlError):
    """Writing a single archive failed."""
