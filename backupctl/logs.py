"""Run log and per-job log buffers."""

import logging
import sys
from contextlib import contextmanager
from logging.handlers import MemoryHandler
from typing import Dict, Iterator, List, Optional, TextIO

LOGFORMAT = logging.Formatter(fmt='%(levelname)-8s %(asctime)-8s.%(msecs)03d: %(message)s', datefmt="%H:%M:%S")
RUN_LOGGER = "backupctl"
JOB_LOGGER = "backupctl.job"

# Large enough that a run never flushes before the log file is attached
BUFFER_CAPACITY = 100000


class RunLog:
    """The main log of one run.

    Records are buffered in memory until the log file path is known, then
    written to it in order. A console handler echoes to stderr meanwhile.
    """

    def __init__(self, level: str = "INFO", stream: Optional[TextIO] = None, console: bool = True):
        self.logger = logging.getLogger(RUN_LOGGER)
        self.logger.setLevel(level)
        self.buffer = MemoryHandler(BUFFER_CAPACITY, flushLevel=logging.CRITICAL + 1, target=None, flushOnClose=False)
        self.buffer.setFormatter(LOGFORMAT)
        self.logger.addHandler(self.buffer)
        self.file_handler: Optional[logging.FileHandler] = None
        self.console_handler: Optional[logging.StreamHandler] = None
        if console:
            self.console_handler = logging.StreamHandler(stream=stream or sys.stderr)
            self.console_handler.setFormatter(LOGFORMAT)
            self.logger.addHandler(self.console_handler)

    def attach_file(self, path: str) -> None:
        """Write everything buffered so far to path and keep logging there."""
        self.file_handler = logging.FileHandler(path, encoding="utf-8")
        self.file_handler.setFormatter(LOGFORMAT)
        self.buffer.setTarget(self.file_handler)
        self.buffer.flush()
        self.logger.removeHandler(self.buffer)
        self.logger.addHandler(self.file_handler)

    def detach_buffer(self) -> None:
        """Stop buffering when no log file will be attached."""
        self.logger.removeHandler(self.buffer)
        self.buffer.buffer.clear()

    def dump(self, stream: TextIO) -> None:
        """Write buffered records to a stream. Used when a run aborts early."""
        for record in self.buffer.buffer:
            stream.write(LOGFORMAT.format(record) + "\n")
        stream.flush()

    def close(self) -> None:
        for handler in (self.buffer, self.file_handler, self.console_handler):
            if handler is not None:
                self.logger.removeHandler(handler)
                handler.close()


class JobLogBuffer(logging.Handler):
    """Keeps one job's log records until they are replayed into the run log."""

    def __init__(self):
        super().__init__()
        self.records: List[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


class JobLogs:
    """Per-job log buffers for a single run, keyed by job name."""

    def __init__(self, level: str = "INFO"):
        self.level = level
        self._buffers: Dict[str, JobLogBuffer] = {}

    @contextmanager
    def capture(self, name: str) -> Iterator[logging.Logger]:
        """Yield a logger whose records are kept for this job only."""
        logger = logging.getLogger(f"{JOB_LOGGER}.{name}")
        logger.propagate = False
        logger.setLevel(self.level)
        handler = JobLogBuffer()
        self._buffers[name] = handler
        logger.addHandler(handler)
        try:
            yield logger
        finally:
            logger.removeHandler(handler)
            handler.close()

    def replay(self, name: str, target: logging.Logger) -> int:
        """Hand a job's records to the run logger and release the buffer."""
        handler = self._buffers.pop(name, None)
        if handler is None:
            return 0
        for record in handler.records:
            target.handle(record)
        return len(handler.records)

    def pending(self) -> List[str]:
        return list(self._buffers)
