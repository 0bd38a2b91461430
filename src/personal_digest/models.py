from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_TEXT_CHARS = 1200
MIN_TEXT_CHARS = 20
EXCERPT_CHARS = 200


class SourceType(str, Enum):
    post = "post"
    comment = "comment"
    reply = "reply"
    recommendation = "recommendation"
    media = "media"
    reaction = "reaction"
    event = "event"


class ContentItem(BaseModel):
    """A single short user-authored text fragment after normalization."""
    id: str = ""
    sourceType: str = SourceType.post.value
    text: str
    createdAt: Optional[datetime] = None
    engagement: float = Field(default=0.0, ge=0.0)
    url: str = ""

    @property
    def labelled_text(self) -> str:
        return f"[{self.sourceType}] {self.text}"


class TypeRule(BaseModel):
    """Selection cap and representative-ranking weight for one source type."""
    cap: int = Field(gt=0)
    weight: float = Field(gt=0.0)


DEFAULT_TYPE_CONFIG: Dict[str, TypeRule] = {
    "post": TypeRule(cap=50, weight=1.0),
    "comment": TypeRule(cap=150, weight=0.5),
    "reply": TypeRule(cap=150, weight=0.4),
    "recommendation": TypeRule(cap=40, weight=1.0),
    "media": TypeRule(cap=60, weight=0.9),
    "event": TypeRule(cap=50, weight=0.8),
    "reaction": TypeRule(cap=50, weight=0.8),
}

# Applied to source types missing from the config
FALLBACK_RULE = TypeRule(cap=20, weight=0.5)

TypeConfig = Dict[str, TypeRule]


def resolve_type_config(overrides: Optional[Mapping[str, Any]] = None) -> TypeConfig:
    """Merge a partial override over the defaults.

    Each override entry may be a ``TypeRule`` or a dict carrying ``cap``
    and/or ``weight``; missing keys keep the default (or fallback) value.
    """
    config = dict(DEFAULT_TYPE_CONFIG)
    for source_type, rule in (overrides or {}).items():
        key = str(source_type).lower()
        base = config.get(key, FALLBACK_RULE)
        if isinstance(rule, TypeRule):
            config[key] = rule
        else:
            config[key] = TypeRule(**{**base.model_dump(), **dict(rule)})
    return config


def rule_for(config: TypeConfig, source_type: str) -> TypeRule:
    return config.get(source_type, FALLBACK_RULE)


class PipelineOptions(BaseModel):
    limit: int = Field(default=250, gt=0)
    typeConfig: Dict[str, Union[TypeRule, Dict[str, Any]]] = Field(default_factory=dict)


class Cluster(BaseModel):
    """Indices into the deduplicated item list plus their mean vector."""
    members: List[int]
    centroid: List[float]


class Representative(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    url: str
    sourceType: str


class ClusterSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    summaryText: str
    representatives: List[Representative] = Field(default_factory=list)


class Evidence(BaseModel):
    """Provenance pointer back to a specific item."""
    id: str = ""
    sourceType: str = ""
    excerpt: str = ""
    url: str = ""

    @field_validator("excerpt")
    @classmethod
    def _clip_excerpt(cls, value: str) -> str:
        return value[:EXCERPT_CHARS]

    @classmethod
    def from_item(cls, item: ContentItem) -> "Evidence":
        return cls(id=item.id, sourceType=item.sourceType, excerpt=item.text, url=item.url)


class PersonalProfileArtifact(BaseModel):
    """Final output of one pipeline invocation."""
    model_config = ConfigDict(frozen=True)

    personalSummary: str = ""
    personalInterests: List[str] = Field(default_factory=list)
    seedInterests: List[str] = Field(default_factory=list)
    evidence: List[Evidence] = Field(default_factory=list)
    provenance: Dict[str, Any] = Field(default_factory=dict)
    rawFinalText: str = ""
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


def empty_artifact(count: int, error: Optional[str] = None) -> PersonalProfileArtifact:
    return PersonalProfileArtifact(provenance={"count": count}, error=error)


# ---- Debug trace -------------------------------------------------------------

def shrink_vector(vector: List[float], max_dims: int = 64, precision: int = 4) -> List[float]:
    return [round(float(x), precision) for x in vector[:max_dims]]


class ClusterTrace(BaseModel):
    index: int
    memberIds: List[str]
    centroid: List[float]
    summaryText: str = ""
    representatives: List[Representative] = Field(default_factory=list)
    members: List[Evidence] = Field(default_factory=list)


class PipelineTrace(BaseModel):
    """Intermediate state of a run, returned instead of written to disk."""
    itemCount: int = 0
    normalizedCount: int = 0
    selectedCount: int = 0
    keptCount: int = 0
    k: int = 0
    clusters: List[ClusterTrace] = Field(default_factory=list)
    seedInterests: List[str] = Field(default_factory=list)

    def to_debug_dict(self, max_clusters: int = 12, max_members: int = 10) -> Dict[str, Any]:
        """Compact, JSON-ready view with shortened centroids."""
        return {
            "itemCount": self.itemCount,
            "selectedCount": self.keptCount,
            "seedInterests": list(self.seedInterests),
            "clusters": [
                {
                    "clusterIndex": c.index,
                    "summary": c.summaryText,
                    "centroid": shrink_vector(c.centroid),
                    "members": [m.model_dump() for m in c.members[:max_members]],
                }
                for c in self.clusters[:max_clusters]
            ],
        }
