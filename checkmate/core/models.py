from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# === Input ===

class ContentKind(str, Enum):
    TEXT = "text"
    URL = "url"
    TWITTER = "twitter"
    TIKTOK = "tiktok"
    IMAGE = "image"
    FILE = "file"


class ContentItem(CamelModel):
    kind: ContentKind = Field(..., description="Detected kind, derived from raw input, never user-declared.")
    raw: str = Field(..., description="Original string (text, URL or base64 payload) as submitted.")
    resolved_url: Optional[str] = Field(None, description="Canonicalized URL for link kinds.")
    canonical_id: Optional[str] = Field(None, description="Tweet id or TikTok video id / short code.")
    filename: Optional[str] = None
    mime_type: Optional[str] = None

    def label(self) -> str:
        if self.resolved_url:
            return f"{self.kind.value} {self.resolved_url}"
        if self.filename:
            return f"{self.kind.value} {self.filename}"
        return self.kind.value


# === Extraction ===

class ExtractionResult(CamelModel):
    source_item: ContentItem
    status: Literal["success", "failure"]
    text: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None

    @model_validator(mode="after")
    def _text_xor_error(self) -> "ExtractionResult":
        if self.status == "success" and (self.text is None or self.error is not None):
            raise ValueError("a successful extraction carries text and no error")
        if self.status == "failure" and (self.error is None or self.text is not None):
            raise ValueError("a failed extraction carries an error and no text")
        return self

    @classmethod
    def success(cls, item: ContentItem, text: str, metadata: Optional[Dict[str, Any]] = None) -> "ExtractionResult":
        return cls(source_item=item, status="success", text=text, metadata=metadata or {})

    @classmethod
    def failure(cls, item: ContentItem, error: str, metadata: Optional[Dict[str, Any]] = None) -> "ExtractionResult":
        return cls(source_item=item, status="failure", error=error, metadata=metadata or {})

    @property
    def ok(self) -> bool:
        return self.status == "success"


class SourceReference(CamelModel):
    kind: ContentKind
    label: str
    url: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class FailedSource(CamelModel):
    kind: ContentKind
    label: str
    url: Optional[str] = None
    error: str


class CombinedContent(CamelModel):
    text: str = ""
    source_count: int = 0
    sources: List[SourceReference] = Field(default_factory=list)
    failures: List[FailedSource] = Field(default_factory=list)


# === Classification ===

class InvestigationType(str, Enum):
    SOCIAL_POST_ANALYSIS = "social-post-analysis"
    CLAIM_VERIFICATION = "claim-verification"
    DEEP_RESEARCH = "deep-research"
    COMPARATIVE_ANALYSIS = "comparative-analysis"


class Classification(CamelModel):
    investigation_type: InvestigationType
    used_fallback: bool = False
    reasoning: Optional[str] = None


# === Agent loop ===

class AgentAction(CamelModel):
    id: str = Field(..., description="Tool call id; shared by the pending and the resolved emission.")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    action: str
    tool: Optional[str] = None
    status: Literal["pending", "completed", "error"]
    step: int = 0
    args: Optional[Dict[str, Any]] = None
    result: Optional[str] = None
    error: Optional[str] = None


Verdict = Literal["true", "false", "partially-true", "unverifiable"]

TRUE_THRESHOLD = 75
PARTIAL_THRESHOLD = 40
UNVERIFIABLE_SCORE = 50


def verdict_for_score(score: int) -> str:
    """score >= 75 -> true, 40..74 -> partially-true, below 40 -> false."""
    if score >= TRUE_THRESHOLD:
        return "true"
    if score >= PARTIAL_THRESHOLD:
        return "partially-true"
    return "false"


class Evidence(CamelModel):
    claim: str
    source: str = ""
    verification: Literal["verified", "disputed", "unverified"] = "unverified"
    explanation: str = ""

    @field_validator("verification", mode="before")
    @classmethod
    def _normalize_verification(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            return {"supported": "verified", "contradicted": "disputed", "false": "disputed"}.get(value, value)
        return value


class Source(CamelModel):
    name: str
    url: Optional[str] = None
    type: str = Field("website", description="api | website | document")
    reliability: Literal["high", "medium", "low"] = "medium"

    @field_validator("reliability", mode="before")
    @classmethod
    def _normalize_reliability(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class InvestigationResultPayload(CamelModel):
    """Shape the agent must answer with once it stops calling tools."""
    truthfulness_score: int = Field(..., ge=0, le=100)
    verdict: Verdict
    summary: str
    reasoning: str
    evidence: List[Evidence] = Field(default_factory=list)
    sources: List[Source] = Field(default_factory=list)

    @field_validator("truthfulness_score", mode="before")
    @classmethod
    def _round_score(cls, value: Any) -> Any:
        if isinstance(value, float):
            return round(value)
        return value

    @field_validator("verdict", mode="before")
    @classmethod
    def _normalize_verdict(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower().replace("_", "-").replace(" ", "-")
            if value in ("unverified", "unknown"):
                return "unverifiable"
        return value

    def reconciled(self) -> "InvestigationResultPayload":
        """Apply the fixed score/verdict mapping."""
        if self.verdict == "unverifiable":
            return self.model_copy(update={"truthfulness_score": UNVERIFIABLE_SCORE})
        return self.model_copy(update={"verdict": verdict_for_score(self.truthfulness_score)})


class InvestigationResult(InvestigationResultPayload):
    investigation_type: InvestigationType
    agent_actions: List[AgentAction] = Field(default_factory=list)
    content_sources: List[SourceReference] = Field(default_factory=list)
    failed_sources: List[FailedSource] = Field(default_factory=list)


# === Stream events ===

class SourcesEvent(CamelModel):
    type: Literal["sources"] = "sources"
    sources: List[SourceReference]
    failures: List[FailedSource] = Field(default_factory=list)


class InvestigationTypeEvent(CamelModel):
    type: Literal["investigation-type"] = "investigation-type"
    investigation_type: InvestigationType
    used_fallback: bool = False


class AgentActionEvent(CamelModel):
    type: Literal["agent-action"] = "agent-action"
    action: AgentAction


class ResultEvent(CamelModel):
    type: Literal["result"] = "result"
    result: InvestigationResult


class ErrorEvent(CamelModel):
    type: Literal["error"] = "error"
    error: str


InvestigationEvent = Union[SourcesEvent, InvestigationTypeEvent, AgentActionEvent, ResultEvent, ErrorEvent]


def is_terminal(event: InvestigationEvent) -> bool:
    return isinstance(event, (ResultEvent, ErrorEvent))


# === Span analysis & claim verification ===

class FactBiasSentimentSpan(CamelModel):
    start: int = Field(..., ge=0, description="0-based, inclusive")
    end: int = Field(..., ge=0, description="0-based, exclusive")
    type: Literal["fact", "bias", "sentiment"]
    short_explanation: str
    text: str = ""
    subtype: Optional[str] = None
    confidence: Optional[float] = Field(None, ge=0, le=1)


class SpanAnalysis(CamelModel):
    text: str
    spans: List[FactBiasSentimentSpan]
    truncated: bool = False


class ClaimEvidence(CamelModel):
    quote: str
    source_title: Optional[str] = None
    url: Optional[str] = None
    claim_snippet: Optional[str] = None


class ClaimSource(CamelModel):
    title: str
    url: str


class ClaimVerification(CamelModel):
    verdict: Literal["supported", "contradicted", "mixed", "unverifiable"]
    confidence: float = Field(..., ge=0, le=1)
    explanation: str
    evidence: List[ClaimEvidence] = Field(default_factory=list)
    sources: List[ClaimSource] = Field(default_factory=list)

    @field_validator("verdict", mode="before")
    @classmethod
    def _normalize_verdict(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            return "unverifiable" if value in ("unknown", "unverified") else value
        return value

    @field_validator("confidence", mode="before")
    @classmethod
    def _percent_to_fraction(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and 1 < value <= 100:
            return value / 100
        return value

    @classmethod
    def unverifiable(cls, explanation: str) -> "ClaimVerification":
        return cls(verdict="unverifiable", confidence=0.0, explanation=explanation)


# === Preview & history ===

class PreviewResult(CamelModel):
    type: Literal["twitter", "tiktok"]
    url: str
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class HistoryRecord(CamelModel):
    id: str
    user_query: str
    user_source_content: Optional[str] = None
    results: Any = None
    graph_data: Any = None
    timestamp: float
