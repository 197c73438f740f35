"""
Data structures passed between pipeline stages.

Everything here is created fresh for one invocation and discarded once the
caller has consumed the ProcessingSummary.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


def clamp(value: float, low: float, high: float) -> float:
    """Clamp value to the closed range [low, high]."""
    return max(low, min(high, value))


class Band(Enum):
    """Stage 2 confidence band."""
    HIGH = "high"      # Accept, no AI needed
    MEDIUM = "medium"  # Download and ask the model
    LOW = "low"        # Reject, no AI

    @property
    def should_download(self) -> bool:
        return self is Band.MEDIUM


class AttachmentState(Enum):
    """Per-attachment lifecycle inside one orchestrator run."""
    NEW = "new"
    REJECTED_STAGE1 = "rejected_stage1"
    SCORED = "scored"
    ACCEPTED_HIGH = "accepted_high"
    REJECTED_LOW = "rejected_low"
    PENDING_AI = "pending_ai"
    CLASSIFIED = "classified"

    @property
    def terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset({
    AttachmentState.REJECTED_STAGE1,
    AttachmentState.ACCEPTED_HIGH,
    AttachmentState.REJECTED_LOW,
    AttachmentState.CLASSIFIED,
})


@dataclass(frozen=True)
class AttachmentMetadata:
    """
    Attachment properties known without downloading it.

    Attributes:
        id: Provider-side attachment reference
        filename: Original filename
        mime_type: Declared MIME type
        size_bytes: Declared size in bytes
    """
    id: str
    filename: str
    mime_type: str
    size_bytes: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AttachmentMetadata":
        return cls(
            id=str(data.get("id", "")),
            filename=str(data.get("filename", "")),
            mime_type=str(data.get("mime_type") or data.get("mimeType") or ""),
            size_bytes=int(data.get("size_bytes") or data.get("sizeBytes") or 0),
        )


@dataclass(frozen=True)
class EmailContext:
    """Email-level metadata shared by all attachments of one message."""
    sender_address: str
    subject: str
    attachment_count: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EmailContext":
        return cls(
            sender_address=str(data.get("sender_address") or data.get("from") or ""),
            subject=str(data.get("subject") or ""),
            attachment_count=int(data.get("attachment_count") or 0),
        )


@dataclass(frozen=True)
class ScoreBreakdown:
    """Stage 2 sub-scores. Every field is clamped to [0, 100]."""
    filename_score: int
    subject_score: int
    properties_score: int
    sender_score: int
    total: int

    def __post_init__(self):
        for name in ("filename_score", "subject_score", "properties_score",
                     "sender_score", "total"):
            object.__setattr__(self, name, int(clamp(getattr(self, name), 0, 100)))

    @classmethod
    def from_parts(
        cls,
        filename_score: int,
        subject_score: int,
        properties_score: int,
        sender_score: int,
    ) -> "ScoreBreakdown":
        total = filename_score + subject_score + properties_score + sender_score
        return cls(filename_score, subject_score, properties_score, sender_score, total)

    def to_dict(self) -> Dict[str, int]:
        return {
            "filename_score": self.filename_score,
            "subject_score": self.subject_score,
            "properties_score": self.properties_score,
            "sender_score": self.sender_score,
            "total": self.total,
        }


@dataclass(frozen=True)
class AIVerdict:
    """
    Stage 3 answer from the model.

    Attributes:
        is_match: Whether the model thinks the document is the target type
        confidence: Model self-assessed confidence, clamped to [0, 1]
        reason: Short explanation
        insufficient_text: Not enough text to decide
    """
    is_match: bool
    confidence: float
    reason: str = ""
    insufficient_text: bool = False

    def __post_init__(self):
        object.__setattr__(self, "confidence", clamp(float(self.confidence), 0.0, 1.0))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_match": self.is_match,
            "confidence": self.confidence,
            "reason": self.reason,
            "insufficient_text": self.insufficient_text,
        }


INSUFFICIENT_TEXT_VERDICT = AIVerdict(
    is_match=False, confidence=0.0, reason="insufficient text", insufficient_text=True
)

FALLBACK_VERDICT = AIVerdict(
    is_match=False, confidence=0.0, reason="classification failed", insufficient_text=False
)


@dataclass
class DetectionResult:
    """Terminal outcome for one attachment."""
    attachment: AttachmentMetadata
    stage2: Optional[ScoreBreakdown]
    final_confidence: float
    is_match: bool
    reason: str
    state: AttachmentState
    band: Optional[Band] = None
    ai_verdict: Optional[AIVerdict] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attachment_id": self.attachment.id,
            "filename": self.attachment.filename,
            "stage2": self.stage2.to_dict() if self.stage2 else None,
            "ai_verdict": self.ai_verdict.to_dict() if self.ai_verdict else None,
            "final_confidence": self.final_confidence,
            "is_match": self.is_match,
            "reason": self.reason,
            "state": self.state.value,
            "band": self.band.value if self.band else None,
        }


@dataclass
class FilterDecision:
    """Stage 1 output."""
    should_process: bool
    reason: str
    survivors: List[AttachmentMetadata] = field(default_factory=list)


@dataclass
class ProcessingSummary:
    """Everything the caller gets back for one email."""
    detected: bool
    results: List[DetectionResult]
    processing_time_ms: int
    best_result: Optional[DetectionResult] = None
    policy_name: str = ""
    filter_decision: Optional[FilterDecision] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "policy": self.policy_name,
            "detected": self.detected,
            "processing_time_ms": self.processing_time_ms,
            "filter_reason": self.filter_decision.reason if self.filter_decision else None,
            "best_attachment_id": self.best_result.attachment.id if self.best_result else None,
            "results": [r.to_dict() for r in self.results],
        }
