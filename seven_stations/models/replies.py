"""Shapes of the JSON objects stations ask the text generator for.

Only the container types are enforced. Individual items are still checked
by the station that reads them, so one bad item never discards the rest.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class EntitySupplement(BaseModel):
    """Entities the model proposes in addition to the heuristic ones."""

    model_config = ConfigDict(extra="ignore")

    entities: Optional[list[Any]] = None


class FramingReading(BaseModel):
    """The model's genre, thesis and themes."""

    model_config = ConfigDict(extra="ignore")

    genre: Optional[Any] = None
    confidence: Optional[Any] = None
    thesis: Optional[Any] = None
    themes: Optional[list[Any]] = None


class SymbolismReading(BaseModel):
    model_config = ConfigDict(extra="ignore")

    motifs: Optional[list[Any]] = None


class ExecutiveSummary(BaseModel):
    model_config = ConfigDict(extra="ignore")

    summary: Optional[str] = None
