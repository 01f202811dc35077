"""Failures a pipeline run can end in.

Callers receive either a complete ``OrchestrationResult`` or one of these
errors; never a half-populated result. A compliance flag is not an error.
"""

from seven_stations.llm.generation import GenerationError, GenerationTimeout
from seven_stations.models import RunState


class PipelineError(Exception):
    """Base class for terminal pipeline failures.

    Attributes:
        state: Terminal run state (failed or cancelled).
        completed_stations: Station ids that finished before the failure.
    """

    retryable = False

    def __init__(
        self,
        message: str,
        state: RunState = RunState.FAILED,
        completed_stations: list[str] | None = None,
    ):
        super().__init__(message)
        self.state = state
        self.completed_stations = list(completed_stations or [])


class InvalidInput(PipelineError):
    """The submission carried no usable text. Caller error, not retryable."""

    pass


class StationFailure(PipelineError):
    """A station could not produce even a degraded result."""

    def __init__(
        self,
        station_id: str,
        cause: Exception,
        completed_stations: list[str] | None = None,
    ):
        super().__init__(
            f"Station {station_id} failed: {type(cause).__name__}: {cause}",
            state=RunState.FAILED,
            completed_stations=completed_stations,
        )
        self.station_id = station_id
        self.cause = cause

    @property
    def is_timeout(self) -> bool:
        return isinstance(self.cause, GenerationTimeout)

    @property
    def retryable(self) -> bool:
        return isinstance(self.cause, GenerationError) and self.cause.transient


class PipelineCancelled(PipelineError):
    """Cooperative cancellation was honored between stations."""

    def __init__(self, completed_stations: list[str] | None = None):
        super().__init__(
            "Pipeline run cancelled",
            state=RunState.CANCELLED,
            completed_stations=completed_stations,
        )
