"""
Core modules for the docdetect pipeline.

This package contains the detection pipeline:
- policy: Per-document-type tables and thresholds
- metadata_filter: Stage 1 admission gate
- heuristic: Stage 2 metadata scoring and banding
- prompt_engine / ai_classifier: Stage 3 gateway
- confidence: Score/verdict blending
- rate_limiter: Stage 3 concurrency limiter
- content: Attachment loading and text extraction
- orchestrator: Per-email coordinator
"""

from .ai_classifier import AIClassifier, parse_verdict
from .confidence import ConfidenceBlender, blend
from .content import ContentPipeline, DirectoryContentLoader, extract_text
from .errors import (
    ConfigurationError,
    DetectionError,
    DownloadError,
    ExtractionError,
    InferenceError,
    MalformedResponseError,
)
from .heuristic import HeuristicScorer, assign_band, evaluate_rules
from .metadata_filter import MetadataFilter
from .models import (
    AIVerdict,
    AttachmentMetadata,
    AttachmentState,
    Band,
    DetectionResult,
    EmailContext,
    FilterDecision,
    ProcessingSummary,
    ScoreBreakdown,
)
from .orchestrator import DetectionOrchestrator, run_detection
from .policy import (
    JOB_DESCRIPTION_POLICY,
    RESUME_POLICY,
    PatternRule,
    Policy,
    SenderDomainClass,
    get_policy,
    policy_with_overrides,
)
from .prompt_engine import PromptEngine, get_prompt_engine
from .rate_limiter import ConcurrencyLimiter, get_concurrency_limiter

__all__ = [
    "AIClassifier",
    "parse_verdict",
    "ConfidenceBlender",
    "blend",
    "ContentPipeline",
    "DirectoryContentLoader",
    "extract_text",
    "ConfigurationError",
    "DetectionError",
    "DownloadError",
    "ExtractionError",
    "InferenceError",
    "MalformedResponseError",
    "HeuristicScorer",
    "assign_band",
    "evaluate_rules",
    "MetadataFilter",
    "AIVerdict",
    "AttachmentMetadata",
    "AttachmentState",
    "Band",
    "DetectionResult",
    "EmailContext",
    "FilterDecision",
    "ProcessingSummary",
    "ScoreBreakdown",
    "DetectionOrchestrator",
    "run_detection",
    "JOB_DESCRIPTION_POLICY",
    "RESUME_POLICY",
    "PatternRule",
    "Policy",
    "SenderDomainClass",
    "get_policy",
    "policy_with_overrides",
    "PromptEngine",
    "get_prompt_engine",
    "ConcurrencyLimiter",
    "get_concurrency_limiter",
]
