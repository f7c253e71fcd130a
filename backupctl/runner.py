"""Top-level backup run: startup checks, resolution, execution and logging."""

import json
import sys
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Dict, List, Optional, Sequence, TextIO
from pydantic import BaseModel, Field
from .config import RuntimeSettings
from .diagnostics import DiagnosticReport
from .errors import BackupctlError, HostVersionError
from .executor import JobExecutor, check_backend
from .loader import SettingsTree, load
from .logs import JobLogs, RunLog
from .models import DiagnosticCode, ExitCode, JobOutcome, JobSettings, JobState
from .resolver import ResolutionResult, SettingsResolver

MINIMUM_PYTHON = (3, 8)


class RunResult(BaseModel):
    """What a run produced."""
    exit_code: ExitCode = ExitCode.SUCCESS
    outcomes: List[JobOutcome] = Field(default_factory=list)
    log_file: Optional[str] = None
    error_message: Optional[str] = None

    class Config:
        use_enum_values = False

    def outcome(self, name: str) -> Optional[JobOutcome]:
        for outcome in self.outcomes:
            if outcome.name == name:
                return outcome
        return None


def check_host_version(minimum=MINIMUM_PYTHON, current=None) -> None:
    current = tuple(current or sys.version_info[:2])
    if current < tuple(minimum):
        raise HostVersionError(
            f"Python {'.'.join(map(str, minimum))} or newer is required, running {'.'.join(map(str, current))}"
        )


def describe_code(code: int) -> str:
    try:
        return DiagnosticCode(code).name
    except ValueError:
        return ExitCode(code).name


class BackupRunner:
    """Runs every job in a settings file."""

    def __init__(
        self,
        runtime: Optional[RuntimeSettings] = None,
        today: Optional[date] = None,
        stream: Optional[TextIO] = None,
    ):
        self.runtime = runtime or RuntimeSettings()
        self.today = today
        self.stream = stream

    def resolve(self, tree: SettingsTree) -> ResolutionResult:
        """Resolve settings, checking the archive backend before any job."""
        resolver = SettingsResolver(today=self.today)
        report = DiagnosticReport()
        settings = resolver.resolve_global(tree.global_settings, report)
        check_backend(settings.archive_type)
        jobs = [resolver.resolve_job(name, section, settings, report) for name, section in tree.jobs]
        return ResolutionResult(settings, jobs, report)

    def run(self, settings_file: str, only_jobs: Optional[Sequence[str]] = None) -> RunResult:
        run_log = RunLog(self.runtime.log_level, stream=self.stream, console=self.runtime.console_log)
        logger = run_log.logger
        try:
            try:
                check_host_version()
                tree = load(settings_file)
                self._echo_settings(tree, logger)
                resolution = self.resolve(tree)
            except BackupctlError as e:
                logger.critical(f"{e} (exit code {int(e.exit_code)} {e.exit_code.name})")
                if not self.runtime.console_log:
                    run_log.dump(self.stream or sys.stderr)
                return RunResult(exit_code=e.exit_code, error_message=str(e))

            result = RunResult()
            self._log_diagnostics(resolution.report, logger)

            settings = resolution.global_settings
            if settings.full_log_path:
                run_log.attach_file(settings.full_log_path)
                result.log_file = settings.full_log_path
            else:
                logger.warning("No log file configured (logFileName missing or logPath not found); logging to console only")
                run_log.detach_buffer()

            executor = JobExecutor(settings)
            selected = self._plan(resolution, executor, only_jobs, result, logger)
            result.outcomes.extend(self._execute(selected, executor, logger))
            order = {job.name: i for i, job in enumerate(resolution.jobs)}
            result.outcomes.sort(key=lambda o: order[o.name])

            completed = sum(1 for o in result.outcomes if o.state == JobState.COMPLETED)
            failed = sum(1 for o in result.outcomes if o.state == JobState.FAILED)
            skipped = sum(1 for o in result.outcomes if o.state == JobState.SKIPPED)
            logger.info(f"Run finished: {completed} completed, {failed} failed, {skipped} skipped")
            if failed or skipped:
                result.exit_code = ExitCode.UNKNOWN_ERROR
            return result
        finally:
            run_log.close()

    def _echo_settings(self, tree: SettingsTree, logger) -> None:
        logger.info(f"Settings file: {tree.source_file}")
        for key, value in tree.global_settings.items():
            logger.info(f"  {key}: {value}")
        for name, section in tree.jobs:
            logger.info(f"  Job '{name}': {json.dumps(section)}")

    def _log_diagnostics(self, report: DiagnosticReport, logger) -> None:
        logger.info("Settings diagnostics:")
        for key, value in report.as_flat().items():
            if value is True:
                logger.info(f"  {key}: True")
            else:
                logger.error(f"  {key}: {value} ({describe_code(value)})")

    def _plan(
        self,
        resolution: ResolutionResult,
        executor: JobExecutor,
        only_jobs: Optional[Sequence[str]],
        result: RunResult,
        logger,
    ) -> List[JobSettings]:
        """Log each job's output path and pick the jobs that will run."""
        selected = []
        for job in resolution.jobs:
            if only_jobs and job.name not in only_jobs:
                logger.info(f"[{job.name}] Not selected for this run")
                continue
            if not resolution.report.is_executable(job.name):
                errors = {key: int(code) for key, code in resolution.report.job_failures(job.name).items()}
                details = ", ".join(f"{key}={code}" for key, code in errors.items())
                logger.error(f"[{job.name}] Skipped: {details}")
                result.outcomes.append(JobOutcome(name=job.name, state=JobState.SKIPPED, errors=errors))
                continue
            logger.info(f"[{job.name}] Archive: {executor.output_path(job)}")
            selected.append(job)
        if only_jobs:
            for name in only_jobs:
                if name not in resolution.report.job_names():
                    logger.warning(f"Job '{name}' is not defined in the settings file")
        return selected

    def _execute(self, jobs: List[JobSettings], executor: JobExecutor, logger) -> List[JobOutcome]:
        """Execute jobs, replaying each job's log into the run log in order."""
        job_logs = JobLogs(self.runtime.log_level)

        def run_one(job: JobSettings) -> JobOutcome:
            with job_logs.capture(job.name) as job_logger:
                return executor.execute(job, job_logger)

        outcomes: Dict[str, JobOutcome] = {}
        if self.runtime.workers > 1 and len(jobs) > 1:
            with ThreadPoolExecutor(max_workers=self.runtime.workers) as pool:
                futures = {job.name: pool.submit(run_one, job) for job in jobs}
                for job in jobs:
                    outcomes[job.name] = futures[job.name].result()
                    job_logs.replay(job.name, logger)
        else:
            for job in jobs:
                outcomes[job.name] = run_one(job)
                job_logs.replay(job.name, logger)
        leftover = job_logs.pending()
        if leftover:
            logger.warning(f"Job logs not replayed: {', '.join(leftover)}")
        return [outcomes[job.name] for job in jobs]
