"""CLI interface for backupctl."""

import click
import sys
from typing import Optional, Tuple
from pydantic import ValidationError
from .config import RuntimeSettings, get_runtime_settings
from .errors import BackupctlError
from .executor import JobExecutor
from .loader import load
from .models import CODE_DESCRIPTIONS, DiagnosticCode, ExitCode, JobState
from .resolver import ResolutionResult, SettingsResolver
from .runner import BackupRunner, describe_code


def _runtime() -> RuntimeSettings:
    """Runtime settings from the environment, exiting when they are invalid."""
    try:
        return get_runtime_settings()
    except ValidationError as e:
        click.echo(f"✗ Invalid BACKUPCTL_* setting: {e.errors()[0]['msg']}", err=True)
        sys.exit(int(ExitCode.UNKNOWN_ERROR))


def _settings_file(path: Optional[str], runtime: RuntimeSettings) -> str:
    return path or runtime.settings_file


def _resolve(path: str) -> ResolutionResult:
    """Load and resolve a settings file, exiting on fatal errors."""
    try:
        tree = load(path)
    except BackupctlError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(int(e.exit_code))
    return SettingsResolver().resolve(tree)


@click.group()
def cli():
    """backupctl - Configuration-driven backup replication"""
    pass


@cli.command()
@click.argument("settings_file", required=False)
@click.option("--job", "jobs", multiple=True, help="Only run the named job (repeatable)")
@click.option("--workers", type=int, default=None, help="Jobs to run in parallel")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]), default=None)
@click.option("--quiet", is_flag=True, help="Do not echo the run log to stderr")
def run(settings_file: Optional[str], jobs: Tuple[str, ...], workers: Optional[int], log_level: Optional[str], quiet: bool):
    """Run every job in a settings file.

    Example:
        backupctl run settings.json
        backupctl run settings.json --job SQL --workers 2
    """
    runtime = _runtime()
    if workers is not None:
        if workers < 1:
            click.echo("✗ Workers must be at least 1", err=True)
            sys.exit(int(ExitCode.UNKNOWN_ERROR))
        runtime.workers = workers
    if log_level:
        runtime.log_level = log_level
    if quiet:
        runtime.console_log = False

    runner = BackupRunner(runtime)
    try:
        result = runner.run(_settings_file(settings_file, runtime), only_jobs=list(jobs) or None)
    except Exception as e:
        click.echo(f"✗ Error: {e}", err=True)
        sys.exit(int(ExitCode.UNKNOWN_ERROR))

    for outcome in result.outcomes:
        symbol = "✓" if outcome.state == JobState.COMPLETED else "✗"
        click.echo(f"{symbol} {outcome.name:<20} {outcome.state.value:<10} {outcome.archive_path or ''}")
    if result.log_file:
        click.echo(f"Log: {result.log_file}")
    sys.exit(int(result.exit_code))


@cli.command()
@click.argument("settings_file", required=False)
def validate(settings_file: Optional[str]):
    """Resolve a settings file and show per-field diagnostics.

    Example:
        backupctl validate settings.json
    """
    runtime = _runtime()
    resolution = _resolve(_settings_file(settings_file, runtime))
    report = resolution.report

    click.echo(f"\n{'Field':<40} {'Result':<10} {'Detail':<30}")
    click.echo("-" * 80)
    for key, result in report.items():
        if result.succeeded:
            click.echo(f"{key:<40} {result.status.value:<10}")
        else:
            click.echo(f"{key:<40} {int(result.error):<10} {describe_code(int(result.error)):<30}")
    click.echo()

    failures = report.failures()
    if failures:
        click.echo(f"✗ {len(failures)} field(s) failed to resolve", err=True)
        sys.exit(int(ExitCode.UNKNOWN_ERROR))
    click.echo("✓ Settings are valid")


@cli.command()
@click.argument("settings_file", required=False)
def plan(settings_file: Optional[str]):
    """Show the resolved settings and what each job would write.

    Example:
        backupctl plan settings.json
    """
    runtime = _runtime()
    resolution = _resolve(_settings_file(settings_file, runtime))
    settings = resolution.global_settings
    executor = JobExecutor(settings)

    click.echo("\n" + "=" * 60)
    click.echo("Global Settings")
    click.echo("=" * 60)
    click.echo(f"  Source:       {settings.source_path or '-'}")
    click.echo(f"  Destination:  {settings.destination_path or '-'}")
    click.echo(f"  Log file:     {settings.full_log_path or '-'}")
    click.echo(f"  Archive type: {settings.archive_type.value} ({settings.archive_ext or 'from name'})")
    click.echo(f"  Compression:  {settings.compression_level.value}")
    click.echo(f"  Delimiter:    {settings.file_name_delimiter!r}")

    for job in resolution.jobs:
        click.echo("\n" + "-" * 60)
        click.echo(f"Job {job.name}")
        click.echo("-" * 60)
        if not resolution.report.is_executable(job.name):
            for key, code in resolution.report.job_failures(job.name).items():
                click.echo(f"  ✗ {key}: {int(code)} ({code.name})")
            continue
        click.echo(f"  Source:       {job.source_path}")
        click.echo(f"  Output:       {executor.output_path(job)}")
        click.echo(f"  Include:      {', '.join(sorted(job.include_extension)) or '*'}")
        click.echo(f"  Exclude:      {', '.join(sorted(job.exclude_extension)) or '-'}")
        click.echo(f"  Compression:  {job.compression_level.value}")
    click.echo()


@cli.command()
def codes():
    """List exit and diagnostic codes.

    Example:
        backupctl codes
    """
    click.echo(f"\n{'Code':<8} {'Name':<32} {'Meaning':<40}")
    click.echo("-" * 80)
    for code in list(ExitCode) + list(DiagnosticCode):
        click.echo(f"{int(code):<8} {code.name:<32} {CODE_DESCRIPTIONS[code]:<40}")
    click.echo()


if __name__ == "__main__":
    cli()
