"""
Pipeline observability sink.

The orchestrator reports runs, stage transitions and analytics events to a
PipelineObserver and never talks to the logging backend itself. The default
observer writes structured structlog events; tests inject a mock.
"""

from abc import ABC, abstractmethod
from typing import Any

from listing_audit.utils.errors import ErrorHandler
from listing_audit.utils.logger import get_logger


class PipelineObserver(ABC):
    """Receives pipeline transitions and analytics events."""

    @abstractmethod
    def run_started(self, run_id: str, flow: str, **context: Any) -> None:
        ...

    @abstractmethod
    def run_finished(self, run_id: str, status: str, duration_ms: int, **context: Any) -> None:
        """Called once per run, whether it succeeded or stopped at a terminal failure."""

    @abstractmethod
    def stage_started(self, stage: str, **context: Any) -> None:
        ...

    @abstractmethod
    def stage_completed(self, stage: str, duration_ms: int, **context: Any) -> None:
        ...

    @abstractmethod
    def stage_failed(self, stage: str, error: Exception, **context: Any) -> None:
        ...

    @abstractmethod
    def stage_degraded(self, stage: str, reason: str, **context: Any) -> None:
        """A stage hit an error it is allowed to absorb; the run carries on."""

    @abstractmethod
    def event(self, name: str, **properties: Any) -> None:
        """Record an analytics event such as form_submit or report_generated."""


class StructlogObserver(PipelineObserver):
    """Writes every transition as a structured log line."""

    def __init__(self, logger_name: str = "listing_audit.pipeline"):
        self._logger = get_logger(logger_name)

    def run_started(self, run_id: str, flow: str, **context: Any) -> None:
        self._logger.info("Pipeline run started", run_id=run_id, flow=flow, **context)

    def run_finished(self, run_id: str, status: str, duration_ms: int, **context: Any) -> None:
        log = self._logger.info if status == "success" else self._logger.warning
        log("Pipeline run finished", run_id=run_id, status=status, duration_ms=duration_ms, **context)

    def stage_started(self, stage: str, **context: Any) -> None:
        self._logger.info("Stage started", stage=stage, **context)

    def stage_completed(self, stage: str, duration_ms: int, **context: Any) -> None:
        self._logger.info("Stage completed", stage=stage, duration_ms=duration_ms, **context)

    def stage_failed(self, stage: str, error: Exception, **context: Any) -> None:
        self._logger.warning(
            "Stage failed",
            stage=stage,
            error=str(error),
            error_type=ErrorHandler.categorize_error(error),
            **context,
        )

    def stage_degraded(self, stage: str, reason: str, **context: Any) -> None:
        self._logger.warning("Stage degraded", stage=stage, reason=reason, **context)

    def event(self, name: str, **properties: Any) -> None:
        self._logger.info("Event", event_name=name, **properties)
