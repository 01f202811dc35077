"""Models for extracted entities and the conflict network.

Stage Flow:
1. Extraction       → ExtractedEntity, ExtractedRelation
3. Network build    → ConflictNetwork
4. Metrics          → NetworkMetrics
"""

from typing import Optional

from pydantic import BaseModel, Field

from .enums import EntityKind, RelationType


# =============================================================================
# Station 1: Extraction
# =============================================================================

class ExtractedEntity(BaseModel):
    """An entity found in the submitted text."""

    entity_id: str = Field(description="Normalized identifier (e.g., 'astronaut')")
    name: str = Field(description="Canonical surface form")
    kind: EntityKind = Field(default=EntityKind.CHARACTER)
    aliases: list[str] = Field(
        default_factory=list,
        description="Other surface forms merged into this entity",
    )
    descriptors: list[str] = Field(
        default_factory=list,
        description="Adjectives attached to the entity (e.g., 'lonely')",
    )
    mentions: int = Field(default=1, ge=0)
    first_sentence: int = Field(default=0, ge=0, description="Index of first mention")
    sources: list[str] = Field(
        default_factory=list,
        description="Signals that produced this entity (dialogue_cue, proper_noun, ...)",
    )


class ExtractedRelation(BaseModel):
    """A relation between two entities observed in one sentence."""

    source: str = Field(description="entity_id of the first entity")
    target: str = Field(description="entity_id of the second entity")
    relation: RelationType = Field(default=RelationType.ASSOCIATION)
    verb: Optional[str] = Field(None, description="Verb or cue that typed the relation")
    sentence_index: int = Field(default=0, ge=0)
    evidence: str = Field(default="", description="Sentence the relation came from")


# =============================================================================
# Station 3: Conflict Network
# =============================================================================

class NetworkNode(BaseModel):
    """A node in the conflict network."""

    node_id: str
    label: str
    kind: EntityKind = EntityKind.CHARACTER
    mentions: int = Field(default=0, ge=0)
    is_main: bool = Field(default=False, description="Main character flag")


class NetworkEdge(BaseModel):
    """A typed, weighted edge between two nodes."""

    source: str
    target: str
    relation: RelationType = RelationType.ASSOCIATION
    weight: float = Field(default=1.0, ge=0.0)
    evidence: list[str] = Field(default_factory=list)


class ConflictPair(BaseModel):
    """Two nodes in conflict and whether the text resolves it."""

    source: str
    target: str
    resolved: bool = False
    first_sentence: int = Field(default=0, ge=0)
    evidence: list[str] = Field(default_factory=list)


class ConflictNetwork(BaseModel):
    """The structural relation graph consumed by later stations."""

    nodes: list[NetworkNode] = Field(default_factory=list)
    edges: list[NetworkEdge] = Field(default_factory=list)
    protagonist: Optional[str] = Field(None, description="node_id of the protagonist")
    conflict_pairs: list[ConflictPair] = Field(default_factory=list)

    def node(self, node_id: str) -> Optional[NetworkNode]:
        for node in self.nodes:
            if node.node_id == node_id:
                return node
        return None

    def degree(self, node_id: str) -> int:
        return sum(1 for e in self.edges if node_id in (e.source, e.target))

    @property
    def character_ids(self) -> list[str]:
        return [n.node_id for n in self.nodes if n.kind == EntityKind.CHARACTER]

    @property
    def main_ids(self) -> list[str]:
        return [n.node_id for n in self.nodes if n.is_main]


# =============================================================================
# Station 4: Metrics
# =============================================================================

class MetricFlag(BaseModel):
    """A metric outside its expected band, raised by the metrics station."""

    metric: str = Field(description="Metric name (e.g., 'conflict_density')")
    value: float
    expected: str = Field(description="Expected band, human readable")
    deviation: float = Field(ge=0.0, description="Normalized distance from the band")
    node_id: Optional[str] = Field(None, description="Node the flag is about, if any")


class NetworkMetrics(BaseModel):
    """Quantitative efficiency scores over the conflict network."""

    node_count: int = 0
    edge_count: int = 0
    density: float = 0.0
    components: int = 0
    global_efficiency: float = 0.0
    conflict_density: float = 0.0
    resolution_rate: float = 0.0
    protagonist_centrality: float = 0.0
    isolated_ratio: float = 0.0
    efficiency_score: float = Field(default=0.0, ge=0.0, le=1.0)
    flags: list[MetricFlag] = Field(default_factory=list)
