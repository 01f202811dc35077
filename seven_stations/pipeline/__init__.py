"""Pipeline orchestration module."""

from .errors import InvalidInput, PipelineCancelled, PipelineError, StationFailure
from .orchestrator import PipelineOrchestrator, RunTracker, run_pipeline, validate_input

__all__ = [
    "PipelineOrchestrator",
    "RunTracker",
    "run_pipeline",
    "validate_input",
    "PipelineError",
    "InvalidInput",
    "StationFailure",
    "PipelineCancelled",
]
