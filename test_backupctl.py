"""Test suite for backupctl settings loading and resolution."""

import json
import os
import shutil
import tempfile
from datetime import date

import pytest

from backupctl import diagnostics as fields
from backupctl.diagnostics import DiagnosticReport
from backupctl.errors import SettingsFileInvalid, SettingsFileMissing
from backupctl.loader import SettingsTree, load, lookup
from backupctl.models import (
    ArchiveType,
    CompressionLevel,
    DiagnosticCode,
    ExitCode,
    FieldResult,
    FieldStatus,
)
from backupctl.paths import normalize
from backupctl.resolver import SettingsResolver, parse_extensions
from backupctl.templating import date_stamp, expand_archive_name

RUN_DATE = date(2023, 11, 1)
STAMP = "2023-Nov-01"


@pytest.fixture
def workspace():
    """Temporary directory with existing source and destination folders."""
    test_dir = tempfile.mkdtemp(prefix="backupctl_test_")
    os.makedirs(os.path.join(test_dir, "source"))
    os.makedirs(os.path.join(test_dir, "dest"))
    os.makedirs(os.path.join(test_dir, "logs"))
    yield test_dir
    if os.path.exists(test_dir):
        shutil.rmtree(test_dir)


def _write_settings(directory, document, name="settings.json"):
    path = os.path.join(directory, name)
    with open(path, "w") as f:
        json.dump(document, f)
    return path


def _resolve(global_settings, jobs=None, cwd=None):
    tree = SettingsTree(global_settings=global_settings, jobs=jobs or [])
    return SettingsResolver(today=RUN_DATE, cwd=cwd).resolve(tree)


# Path normalization

def test_normalize_appends_separator():
    """Test: Paths without a trailing separator get one."""
    assert normalize("backups") == "backups" + os.sep


def test_normalize_keeps_existing_separator():
    """Test: Paths that already end with a separator are unchanged."""
    path = "backups" + os.sep
    assert normalize(path) == path


@pytest.mark.parametrize("path", ["a", "/var/backups", "C:\\Backups", "relative/dir/"])
def test_normalize_is_idempotent(path):
    """Test: normalize(normalize(p)) == normalize(p)."""
    assert normalize(normalize(path)) == normalize(path)


# Loading

def test_load_missing_file(workspace):
    """Test: A missing settings file is a SettingFileMissing failure."""
    with pytest.raises(SettingsFileMissing) as info:
        load(os.path.join(workspace, "nope.json"))
    assert info.value.exit_code == ExitCode.SETTING_FILE_MISSING


def test_load_empty_file(workspace):
    """Test: An empty settings file counts as missing."""
    path = os.path.join(workspace, "empty.json")
    open(path, "w").close()
    with pytest.raises(SettingsFileMissing):
        load(path)


def test_load_malformed_json(workspace):
    """Test: Parse failures surface as one generic error."""
    path = os.path.join(workspace, "bad.json")
    with open(path, "w") as f:
        f.write("{ not json")
    with pytest.raises(SettingsFileInvalid) as info:
        load(path)
    assert info.value.exit_code == ExitCode.UNKNOWN_ERROR


def test_load_jobs_in_order(workspace):
    """Test: Jobs keep the order of the settings file."""
    path = _write_settings(workspace, {
        "globalJobSettings": {
            "sourcePath": "/data",
            "jobs": [{"SQL": {"sourcePath": "/sql"}}, {"Financial": {}}, {"Archive": None}],
        }
    })
    tree = load(path)
    assert tree.job_names() == ["SQL", "Financial", "Archive"]
    assert tree.jobs[0][1] == {"sourcePath": "/sql"}
    assert tree.jobs[2][1] == {}
    assert tree.global_settings == {"sourcePath": "/data"}


def test_load_jobs_mapping_form(workspace):
    """Test: A jobs object keyed by name is accepted too."""
    path = _write_settings(workspace, {"globalJobSettings": {"jobs": {"A": {}, "B": {}}}})
    assert load(path).job_names() == ["A", "B"]


def test_load_rejects_duplicate_job_names(workspace):
    """Test: Duplicate job names are rejected instead of overwritten."""
    path = _write_settings(workspace, {"globalJobSettings": {"jobs": [{"SQL": {}}, {"SQL": {}}]}})
    with pytest.raises(SettingsFileInvalid):
        load(path)


def test_load_section_key_ignores_case(workspace):
    """Test: Section and key names match regardless of case."""
    path = _write_settings(workspace, {"GlobalJobSettings": {"SourcePath": "/data", "Jobs": [{"A": {}}]}})
    tree = load(path)
    assert tree.job_names() == ["A"]
    assert lookup(tree.global_settings, "sourcePath") == "/data"


# Templating

def test_date_stamp_format():
    """Test: Dates are formatted as yyyy-MMM-dd."""
    assert date_stamp(RUN_DATE) == STAMP
    assert date_stamp(date(2024, 9, 5)) == "2024-Sep-05"


def test_template_default_token():
    """Test: %DEFAULT% expands to job name, delimiter and date."""
    assert expand_archive_name("%DEFAULT%", "Financial", "_", STAMP) == "Financial_2023-Nov-01"


def test_template_adjacent_tokens():
    """Test: Adjacent tokens get a delimiter before substitution."""
    assert expand_archive_name("%JOBNAME%%DATE%", "Financial", "_", STAMP) == "Financial_2023-Nov-01"


def test_template_existing_delimiter():
    """Test: No extra delimiter when one already precedes the token."""
    assert expand_archive_name("Data_%DATE%", "Financial", "_", STAMP) == "Data_2023-Nov-01"


def test_template_literal_text_both_sides():
    """Test: Literal text touching a token is separated on both sides."""
    assert expand_archive_name("Data%DATE%Full", "SQL", "_", STAMP) == "Data_2023-Nov-01_Full"
    assert expand_archive_name("%JOBNAME%Weekly", "SQL", "-", STAMP) == "SQL-Weekly"


def test_template_punctuation_not_separated():
    """Test: Punctuation next to a token gets no delimiter."""
    assert expand_archive_name("%JOBNAME%.tar", "SQL", "_", STAMP) == "SQL.tar"


def test_template_without_tokens():
    """Test: Names without tokens are only trimmed."""
    assert expand_archive_name("  Nightly  ", "SQL", "_", STAMP) == "Nightly"


def test_template_substitution_not_rechecked():
    """Test: Substituted text never triggers adjacency rules."""
    assert expand_archive_name("%JOBNAME%", "Job%DATE%", "_", STAMP) == "Job%DATE%"


# Global defaults

def test_global_defaults(workspace):
    """Test: Missing optional global fields get their documented defaults."""
    result = _resolve({}, cwd=workspace)
    settings = result.global_settings
    assert settings.log_extension == "log"
    assert settings.compression_level == CompressionLevel.NONE
    assert settings.archive_type == ArchiveType.ZIP
    assert settings.archive_ext == ".zip"
    assert settings.file_name_delimiter == "_"
    assert settings.log_path == normalize(workspace)
    assert settings.full_log_path is None
    assert settings.date_stamp == STAMP

    report = result.report
    assert report.global_field(fields.LOG_EXTENSION).status == FieldStatus.DEFAULTED
    assert report.as_flat()["LogPath"] is True
    assert report.as_flat()["SourcePath"] == DiagnosticCode.SOURCE_PATH
    assert report.as_flat()["DestinationPath"] == DiagnosticCode.DESTINATION_PATH


def test_global_values_are_trimmed_and_normalized(workspace):
    """Test: Global values are trimmed and paths end with a separator."""
    logs = os.path.join(workspace, "logs")
    result = _resolve({
        "sourcePath": "  /data/backups ",
        "logPath": logs,
        "logFileName": " Replication ",
        "logExtension": ".txt",
        "compressionLevel": "high",
        "archiveType": "GZip",
        "fileNameDelimiter": "-",
    })
    settings = result.global_settings
    assert settings.source_path == normalize("/data/backups")
    assert settings.log_path == normalize(logs)
    assert settings.compression_level == CompressionLevel.HIGH
    assert settings.archive_type == ArchiveType.GZIP
    assert settings.archive_ext == ".tar.gz"
    assert settings.archive_type_explicit
    assert settings.full_log_path == normalize(logs) + "Replication-2023-Nov-01.txt"


def test_log_path_not_found(workspace):
    """Test: A log path that does not exist is recorded as LogPathNotFound."""
    result = _resolve({"logPath": os.path.join(workspace, "missing"), "logFileName": "Run"})
    assert result.report.as_flat()["LogPath"] == DiagnosticCode.LOG_PATH_NOT_FOUND
    assert result.global_settings.full_log_path is None


def test_unknown_archive_type_falls_back(workspace):
    """Test: Unknown enum values fall back to the default."""
    result = _resolve({"archiveType": "Rar", "compressionLevel": "Maximum"}, cwd=workspace)
    assert result.global_settings.archive_type == ArchiveType.ZIP
    assert result.global_settings.compression_level == CompressionLevel.NONE
    assert not result.global_settings.archive_type_explicit


# Job resolution

def test_job_without_source_anywhere(workspace):
    """Test: No source path in job or global yields JobSourcePath."""
    dest = os.path.join(workspace, "dest")
    result = _resolve({"destinationPath": dest}, jobs=[("SQL", {})], cwd=workspace)
    assert result.report.as_flat()["SQLSourcePath"] == DiagnosticCode.JOB_SOURCE_PATH == -201
    assert not result.report.is_executable("SQL")
    assert result.executable_jobs() == []
    assert result.jobs[0].source_path is None


def test_job_inherits_global_paths(workspace):
    """Test: Jobs without paths inherit the global ones."""
    source = os.path.join(workspace, "source")
    dest = os.path.join(workspace, "dest")
    result = _resolve({"sourcePath": source, "destinationPath": dest}, jobs=[("SQL", {})], cwd=workspace)
    job = result.jobs[0]
    assert job.source_path == normalize(source)
    assert job.destination_path == normalize(dest)
    assert result.report.job_field("SQL", fields.SOURCE_PATH).status == FieldStatus.INHERITED
    assert result.report.is_executable("SQL")


def test_job_paths_override_global(workspace):
    """Test: Job paths win over global paths."""
    own = os.path.join(workspace, "own")
    os.makedirs(own)
    result = _resolve(
        {"sourcePath": os.path.join(workspace, "source"), "destinationPath": os.path.join(workspace, "dest")},
        jobs=[("SQL", {"sourcePath": own})],
        cwd=workspace,
    )
    assert result.jobs[0].source_path == normalize(own)
    assert result.report.job_field("SQL", fields.SOURCE_PATH).status == FieldStatus.OK


def test_job_destination_created_later(workspace):
    """Test: A job destination that does not exist yet still resolves."""
    new_dest = os.path.join(workspace, "new_dest")
    result = _resolve(
        {"sourcePath": os.path.join(workspace, "source")},
        jobs=[("SQL", {"destinationPath": new_dest})],
        cwd=workspace,
    )
    assert result.report.as_flat()["SQLDestinationPath"] is True
    assert result.jobs[0].destination_path == normalize(new_dest)
    assert result.report.is_executable("SQL")


def test_job_source_not_found(workspace):
    """Test: A job source that does not exist fails that job only."""
    result = _resolve(
        {"destinationPath": os.path.join(workspace, "dest")},
        jobs=[("SQL", {"sourcePath": os.path.join(workspace, "gone")}),
              ("Docs", {"sourcePath": os.path.join(workspace, "source")})],
        cwd=workspace,
    )
    flat = result.report.as_flat()
    assert flat["SQLSourcePath"] == DiagnosticCode.JOB_SOURCE_PATH_NOT_FOUND
    assert flat["DocsSourcePath"] is True
    assert [job.name for job in result.executable_jobs()] == ["Docs"]


def test_missing_global_destination_downgrades_for_later_jobs(workspace):
    """Test: A destination deleted between jobs downgrades the global entry."""
    source = os.path.join(workspace, "source")
    dest = os.path.join(workspace, "dest")
    resolver = SettingsResolver(today=RUN_DATE, cwd=workspace)
    report = DiagnosticReport()
    settings = resolver.resolve_global({"sourcePath": source, "destinationPath": dest}, report)

    resolver.resolve_job("A", {}, settings, report)
    assert report.is_executable("A")
    assert report.global_field(fields.DESTINATION_PATH).succeeded

    shutil.rmtree(dest)
    resolver.resolve_job("B", {}, settings, report)
    assert report.global_field(fields.DESTINATION_PATH).error == DiagnosticCode.DESTINATION_PATH_NOT_FOUND
    assert report.job_field("B", fields.DESTINATION_PATH).error == DiagnosticCode.JOB_DESTINATION_PATH_NOT_FOUND

    resolver.resolve_job("C", {}, settings, report)
    assert report.job_field("C", fields.DESTINATION_PATH).error == DiagnosticCode.JOB_DESTINATION_PATH
    assert report.is_executable("A")
    assert not report.is_executable("B")
    assert not report.is_executable("C")


def test_missing_global_source_seen_by_first_job(workspace):
    """Test: A missing global source fails the first job that inherits it."""
    result = _resolve(
        {"sourcePath": os.path.join(workspace, "nowhere"), "destinationPath": os.path.join(workspace, "dest")},
        jobs=[("A", {}), ("B", {})],
        cwd=workspace,
    )
    flat = result.report.as_flat()
    assert flat["SourcePath"] == DiagnosticCode.SOURCE_PATH_NOT_FOUND
    assert flat["ASourcePath"] == DiagnosticCode.JOB_SOURCE_PATH_NOT_FOUND
    assert flat["BSourcePath"] == DiagnosticCode.JOB_SOURCE_PATH


def test_extensions_inherited_and_defaulted(workspace):
    """Test: Extension lists inherit from global or default to empty."""
    result = _resolve(
        {"includeExtension": "bak, trn ,", "sourcePath": os.path.join(workspace, "source")},
        jobs=[("A", {}), ("B", {"includeExtension": ["zip", "7z, rar"], "excludeExtension": " tmp "})],
        cwd=workspace,
    )
    a, b = result.jobs
    assert a.include_extension == frozenset({"bak", "trn"})
    assert a.exclude_extension == frozenset()
    assert result.report.job_field("A", fields.INCLUDE_EXTENSION).status == FieldStatus.INHERITED
    assert result.report.job_field("A", fields.EXCLUDE_EXTENSION).status == FieldStatus.DEFAULTED
    assert b.include_extension == frozenset({"zip", "7z", "rar"})
    assert b.exclude_extension == frozenset({"tmp"})


def test_parse_extensions():
    """Test: Extension values are split on commas and trimmed."""
    assert parse_extensions(None) == frozenset()
    assert parse_extensions("") == frozenset()
    assert parse_extensions(" .bak , *.trn") == frozenset({".bak", "*.trn"})


def test_compression_inherited_and_overridden(workspace):
    """Test: Job compression inherits from global unless the job sets it."""
    result = _resolve(
        {"compressionLevel": "Normal"},
        jobs=[("A", {}), ("B", {"compressionLevel": "ultra"}), ("C", {"compressionLevel": "bogus"})],
        cwd=workspace,
    )
    a, b, c = result.jobs
    assert a.compression_level == CompressionLevel.NORMAL
    assert b.compression_level == CompressionLevel.ULTRA
    assert c.compression_level == CompressionLevel.NORMAL


def test_compression_defaults_to_none(workspace):
    """Test: Without any compression setting jobs use None."""
    result = _resolve({}, jobs=[("A", {})], cwd=workspace)
    assert result.jobs[0].compression_level == CompressionLevel.NONE
    assert result.report.job_field("A", fields.COMPRESSION_LEVEL).status == FieldStatus.DEFAULTED


def test_archive_name_default(workspace):
    """Test: A job without archiveName gets job name, delimiter and date."""
    result = _resolve({}, jobs=[("SQL", {})], cwd=workspace)
    assert result.jobs[0].archive_name == "SQL_2023-Nov-01"
    assert result.report.job_field("SQL", fields.ARCHIVE_NAME).status == FieldStatus.DEFAULTED


def test_archive_name_template(workspace):
    """Test: Job archive names are expanded with the global delimiter."""
    result = _resolve(
        {"fileNameDelimiter": "-"},
        jobs=[("Financial", {"archiveName": "%JOBNAME%%DATE%"}), ("SQL", {"archiveName": "  "})],
        cwd=workspace,
    )
    assert result.jobs[0].archive_name == "Financial-2023-Nov-01"
    assert result.jobs[1].archive_name == "SQL-2023-Nov-01"


def test_archive_path(workspace):
    """Test: Archive path is destination, archive name and extension."""
    dest = os.path.join(workspace, "dest")
    result = _resolve(
        {"sourcePath": os.path.join(workspace, "source"), "destinationPath": dest},
        jobs=[("SQL", {})],
        cwd=workspace,
    )
    job = result.jobs[0]
    assert job.archive_path(result.global_settings.archive_ext) == normalize(dest) + "SQL_2023-Nov-01.zip"


def test_every_field_resolved(workspace):
    """Test: After resolution every entry is True or a negative code."""
    result = _resolve(
        {"sourcePath": os.path.join(workspace, "source")},
        jobs=[("Job1", {}), ("Job2", {"destinationPath": os.path.join(workspace, "dest")})],
        cwd=workspace,
    )
    flat = result.report.as_flat()
    assert len(flat) == len(result.report)
    for key, value in flat.items():
        assert value is True or (isinstance(value, int) and value < 0), key
    job_fields = [key for key in flat if key.startswith("Job1")]
    assert job_fields == [
        "Job1SourcePath", "Job1DestinationPath", "Job1IncludeExtension",
        "Job1ExcludeExtension", "Job1CompressionLevel", "Job1ArchiveName",
    ]


def test_field_result_diagnostics():
    """Test: FieldResult flattens to True or the error code."""
    assert FieldResult.ok("x").as_diagnostic() is True
    assert FieldResult.inherited("x").as_diagnostic() is True
    assert FieldResult.defaulted(None).as_diagnostic() is True
    assert FieldResult.failed(DiagnosticCode.JOB_SOURCE_PATH).as_diagnostic() == -201


def test_report_lookup_by_flat_key(workspace):
    """Test: Report entries are reachable by their flat keys."""
    result = _resolve({}, jobs=[("SQL", {})], cwd=workspace)
    assert "SQLSourcePath" in result.report
    assert result.report["SQLSourcePath"].error == DiagnosticCode.JOB_SOURCE_PATH
    assert not result.report.is_executable("Unknown")
    with pytest.raises(KeyError):
        result.report["Nothing"]
