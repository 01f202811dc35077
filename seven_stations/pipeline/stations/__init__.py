"""The seven analysis stations, in execution order."""

from .base import EmptyTextError, MissingUpstreamResult, Station
from .diagnostics import DiagnosticsStation
from .dynamics import DynamicsStation
from .extraction import ExtractionStation
from .framing import FramingStation
from .metrics import MetricsStation
from .network import NetworkStation
from .synthesis import SynthesisStation


def default_stations() -> tuple[Station, ...]:
    """Fresh instances of the seven stations, S1 to S7."""
    return (
        ExtractionStation(),
        FramingStation(),
        NetworkStation(),
        MetricsStation(),
        DynamicsStation(),
        DiagnosticsStation(),
        SynthesisStation(),
    )


__all__ = [
    "Station",
    "EmptyTextError",
    "MissingUpstreamResult",
    "ExtractionStation",
    "FramingStation",
    "NetworkStation",
    "MetricsStation",
    "DynamicsStation",
    "DiagnosticsStation",
    "SynthesisStation",
    "default_stations",
]
