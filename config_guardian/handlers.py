"""
Config Guardian - Report Sinks

Sinks receive drift reports and per-file warnings produced by compare and
monitor cycles and render them for operators: on the console and in an
append-only event log.
"""
import sys
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, TextIO

from .core import DriftReport

logger = logging.getLogger(__name__)

EVENT_LOGGER_NAME = 'config_guardian.events'


class ReportSink:
    """Base class for all report sinks."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the sink.

        Args:
            config: Configuration dictionary for the sink
        """
        self.config = config or {}
        self.name = self.__class__.__name__

    def handle(self, report: DriftReport, root_path: str) -> None:
        """
        Render a drift report.

        Args:
            report: The report produced by one comparison
            root_path: Root directory the report describes
        """
        raise NotImplementedError("Subclasses must implement handle()")

    def warn(self, path: str, cause: str) -> None:
        """Surface a per-file problem (unreadable file, skipped special file)."""
        logger.warning(f"{path}: {cause}")

    def close(self) -> None:
        """Release any resources held by the sink."""

    def __call__(self, report: DriftReport, root_path: str) -> None:
        """Allow the sink to be called as a function."""
        try:
            self.handle(report, root_path)
        except Exception as e:
            logger.error(f"Error in {self.name} sink: {e}", exc_info=True)

    def __enter__(self) -> 'ReportSink':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ConsoleSink(ReportSink):
    """Prints drift reports as human-readable lines."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, stream: Optional[TextIO] = None):
        """
        Initialize the console sink.

        Args:
            config: Configuration dictionary with the following optional keys:
                - show_clean: Print a line when no drift was found (default: True)
            stream: Output stream (default: sys.stdout)
        """
        super().__init__(config)
        self.stream = stream
        self.show_clean = self.config.get('show_clean', True)

    def _write(self, line: str) -> None:
        print(line, file=self.stream or sys.stdout)

    def handle(self, report: DriftReport, root_path: str) -> None:
        if not report.has_drift:
            logger.info("No configuration drift detected.")
            if self.show_clean:
                self._write("No drift detected.")
            return

        self._write("Drift detected:")
        for record in report:
            self._write(f"  {record.to_line()}")
        logger.warning(
            f"Configuration drift detected in {root_path}: "
            f"{', '.join(f'{kind}={count}' for kind, count in report.summary().items())}"
        )


class EventLogSink(ReportSink):
    """Appends timestamped drift records and warnings to an event log file."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the event log sink.

        Args:
            config: Configuration dictionary with the following keys:
                - log_file: Path to the event log (default: 'drift.log')
                - format: Log format string
        """
        super().__init__(config)
        self.log_file = self.config.get('log_file', 'drift.log')
        self._handler: Optional[logging.Handler] = None
        self._setup_logging()

    def _setup_logging(self) -> None:
        """Attach an append-mode file handler to the event logger."""
        self.logger = logging.getLogger(EVENT_LOGGER_NAME)
        self.logger.setLevel(logging.INFO)
        # Event lines belong in the event log only
        self.logger.propagate = False

        # Remove any existing handlers to avoid duplicate lines
        for handler in self.logger.handlers[:]:
            self.logger.removeHandler(handler)
            handler.close()

        formatter = logging.Formatter(
            self.config.get('format', '%(asctime)s - %(levelname)s - %(message)s')
        )
        self._handler = logging.FileHandler(self.log_file, mode='a', encoding='utf-8')
        self._handler.setFormatter(formatter)
        self.logger.addHandler(self._handler)

    def handle(self, report: DriftReport, root_path: str) -> None:
        if not report.has_drift:
            self.logger.info(f"No drift: {root_path}")
            return

        baseline_at = datetime.fromtimestamp(report.baseline_taken_at).isoformat()
        self.logger.warning(
            f"Drift detected: {root_path} ({len(report)} changes, baseline {baseline_at})"
        )
        for record in report:
            self.logger.warning(record.to_line())

    def warn(self, path: str, cause: str) -> None:
        self.logger.warning(f"Warning: {path}: {cause}")

    def close(self) -> None:
        if self._handler is not None:
            self.logger.removeHandler(self._handler)
            self._handler.close()
            self._handler = None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(log_file='{self.log_file}')"


class CompositeSink(ReportSink):
    """Fans reports and warnings out to several sinks."""

    def __init__(self, sinks: List[ReportSink]):
        super().__init__()
        self.sinks = list(sinks)

    def handle(self, report: DriftReport, root_path: str) -> None:
        for sink in self.sinks:
            sink(report, root_path)

    def warn(self, path: str, cause: str) -> None:
        for sink in self.sinks:
            sink.warn(path, cause)

    def close(self) -> None:
        for sink in self.sinks:
            sink.close()
