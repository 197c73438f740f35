"""
Detection policies.

A Policy is the only thing that differs between the résumé pipeline and the
job-description pipeline. The engine never branches on the document type;
it only reads the tables and thresholds defined here.

Pattern tables are ordered tuples of PatternRule evaluated top to bottom,
first match wins. Higher-value groups therefore come first and the 0-point
negative group comes last.
"""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, FrozenSet, Optional, Pattern, Tuple

from .errors import ConfigurationError


class SenderDomainClass(Enum):
    """Which kind of sender domain earns the sender bonus."""
    PERSONAL = "personal"
    CORPORATE = "corporate"


@dataclass(frozen=True)
class PatternRule:
    """
    One row of a scoring table.

    Attributes:
        label: Group name, used in logs and tests
        pattern: Regular expression, matched case-insensitively with search()
        score: Points awarded when this is the first matching row
    """
    label: str
    pattern: str
    score: int
    _compiled: Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if not 0 <= self.score <= 100:
            raise ConfigurationError(
                f"Rule '{self.label}' score {self.score} outside [0, 100]"
            )
        try:
            compiled = re.compile(self.pattern, re.IGNORECASE)
        except re.error as e:
            raise ConfigurationError(f"Rule '{self.label}' has invalid pattern: {e}")
        object.__setattr__(self, "_compiled", compiled)

    def matches(self, text: str) -> bool:
        return bool(text) and self._compiled.search(text) is not None


def _terms(*terms: str) -> str:
    """
    Build a pattern matching any of the terms as a standalone word.

    Underscores, digits and punctuation count as separators so that
    filenames like "jane_doe_resume.pdf" or "CV-2024.docx" match.
    """
    return r"(?<![a-z])(?:" + "|".join(terms) + r")(?![a-z])"


KB = 1024
MB = 1024 * 1024

DOCUMENT_MIME_TYPES = frozenset({
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.oasis.opendocument.text",
    "application/rtf",
    "text/rtf",
    "text/plain",
})

PERSONAL_EMAIL_DOMAINS = frozenset({
    "gmail.com",
    "googlemail.com",
    "yahoo.com",
    "ymail.com",
    "hotmail.com",
    "outlook.com",
    "live.com",
    "msn.com",
    "icloud.com",
    "me.com",
    "aol.com",
    "protonmail.com",
    "proton.me",
    "gmx.com",
    "gmx.net",
    "mail.com",
    "yandex.com",
    "zoho.com",
    "rediffmail.com",
})

AUTOMATED_SENDER_PATTERNS = (
    r"^no[-_.]?reply",
    r"^do[-_.]?not[-_.]?reply",
    r"automated",
    r"^mailer[-_.]?daemon$",
    r"^postmaster$",
    r"^notifications?$",
    r"^bounces?\b",
    r"^alerts?$",
)

GENERIC_DOCUMENT_TERMS = _terms(
    "document", "doc", "file", "scan", "scanned", "attachment", "untitled"
)


@dataclass(frozen=True)
class Policy:
    """
    Immutable configuration for one target document type.

    Validated on construction; an invalid policy raises ConfigurationError
    before any email is processed. Use policy_with_overrides() to derive a
    tuned copy, which is validated again.
    """
    name: str
    description: str
    allowed_mime_types: FrozenSet[str]
    size_range: Tuple[int, int]
    typical_size_range: Tuple[int, int]
    automated_sender_patterns: Tuple[str, ...]
    negative_subject_keywords: Tuple[str, ...]
    filename_rules: Tuple[PatternRule, ...]
    subject_rules: Tuple[PatternRule, ...]
    preferred_sender_domain_class: SenderDomainClass
    prompt_template: str
    personal_domains: FrozenSet[str] = PERSONAL_EMAIL_DOMAINS
    filename_default: int = 8
    subject_default: int = 5
    high_threshold: int = 70
    low_threshold: int = 40
    ai_confidence_cutoff: float = 0.7
    ai_weight: float = 30
    _sender_patterns: Tuple[Pattern, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("Policy name must not be empty")
        if not 0 <= self.low_threshold < self.high_threshold <= 100:
            raise ConfigurationError(
                f"Policy '{self.name}': thresholds must satisfy "
                f"0 <= low < high <= 100 (got low={self.low_threshold}, "
                f"high={self.high_threshold})"
            )
        if not self.allowed_mime_types:
            raise ConfigurationError(f"Policy '{self.name}' allows no MIME types")
        for label, (low, high) in (("size_range", self.size_range),
                                   ("typical_size_range", self.typical_size_range)):
            if not 0 <= low <= high:
                raise ConfigurationError(
                    f"Policy '{self.name}': invalid {label} ({low}, {high})"
                )
        if not 0.0 <= self.ai_confidence_cutoff <= 1.0:
            raise ConfigurationError(
                f"Policy '{self.name}': ai_confidence_cutoff must be in [0, 1]"
            )
        if self.ai_weight < 0:
            raise ConfigurationError(f"Policy '{self.name}': ai_weight must be >= 0")
        for default in (self.filename_default, self.subject_default):
            if not 0 <= default <= 100:
                raise ConfigurationError(
                    f"Policy '{self.name}': table defaults must be in [0, 100]"
                )
        if not self.filename_rules or not self.subject_rules:
            raise ConfigurationError(f"Policy '{self.name}' has an empty pattern table")

        try:
            compiled = tuple(
                re.compile(p, re.IGNORECASE) for p in self.automated_sender_patterns
            )
        except re.error as e:
            raise ConfigurationError(
                f"Policy '{self.name}': invalid automated sender pattern: {e}"
            )
        object.__setattr__(self, "_sender_patterns", compiled)
        object.__setattr__(
            self,
            "allowed_mime_types",
            frozenset(m.lower() for m in self.allowed_mime_types),
        )
        object.__setattr__(
            self,
            "personal_domains",
            frozenset(d.lower() for d in self.personal_domains),
        )

    def is_automated_local_part(self, local_part: str) -> bool:
        return any(p.search(local_part) for p in self._sender_patterns)

    def allows_mime_type(self, mime_type: str) -> bool:
        return normalize_mime_type(mime_type) in self.allowed_mime_types

    def size_in_range(self, size_bytes: int) -> bool:
        low, high = self.size_range
        return low <= size_bytes <= high

    def size_is_typical(self, size_bytes: int) -> bool:
        low, high = self.typical_size_range
        return low <= size_bytes <= high


def normalize_mime_type(mime_type: Optional[str]) -> str:
    """Lower-case a MIME type and drop parameters such as '; charset=utf-8'."""
    if not mime_type:
        return ""
    return mime_type.split(";", 1)[0].strip().lower()


RESUME_POLICY = Policy(
    name="resume",
    description="résumé / CV",
    allowed_mime_types=DOCUMENT_MIME_TYPES,
    size_range=(1 * KB, 10 * MB),
    typical_size_range=(5 * KB, 2 * MB),
    automated_sender_patterns=AUTOMATED_SENDER_PATTERNS,
    negative_subject_keywords=(
        "invoice",
        "receipt",
        "newsletter",
        "unsubscribe",
        "order confirmation",
        "password reset",
        "payment reminder",
        "out of office",
    ),
    filename_rules=(
        PatternRule(
            "strong_indicator",
            _terms(r"r[eé]sum[eé]", "cv", r"curriculum[\s_-]*vitae", "biodata"),
            40,
        ),
        PatternRule(
            "profile_terms",
            _terms("profile", "portfolio", r"bio[\s_-]*data", r"career[\s_-]*summary"),
            25,
        ),
        PatternRule("application_terms", _terms("application", "applicant", "candidate"), 15),
        PatternRule("generic_document", GENERIC_DOCUMENT_TERMS, 8),
        PatternRule(
            "negative",
            _terms(
                "invoice", "receipt", "statement", "contract", "agreement",
                r"offer[\s_-]*letter", "payslip", r"salary[\s_-]*slip", "brochure",
                "newsletter", r"job[\s_-]*description", "jd", "quotation",
            ),
            0,
        ),
    ),
    subject_rules=(
        PatternRule(
            "application_intent",
            _terms(
                r"applying\s+for", r"application\s+for", r"job\s+application",
                r"r[eé]sum[eé]", "cv", r"curriculum\s+vitae", "candidacy",
            ),
            30,
        ),
        PatternRule(
            "role_terms",
            _terms("position", "opening", "vacancy", "role", "opportunity", "job"),
            20,
        ),
        PatternRule(
            "introduction_terms",
            _terms("introduction", "referral", r"referred\s+by", "portfolio", r"looking\s+for"),
            10,
        ),
        PatternRule(
            "negative",
            _terms("invoice", "receipt", "newsletter", "unsubscribe", "order", "payment", "webinar"),
            0,
        ),
    ),
    preferred_sender_domain_class=SenderDomainClass.PERSONAL,
    prompt_template="resume",
)

JOB_DESCRIPTION_POLICY = Policy(
    name="job_description",
    description="job description",
    allowed_mime_types=DOCUMENT_MIME_TYPES,
    size_range=(1 * KB, 10 * MB),
    typical_size_range=(5 * KB, 2 * MB),
    automated_sender_patterns=AUTOMATED_SENDER_PATTERNS,
    negative_subject_keywords=(
        "applying for",
        "application for",
        "my resume",
        "my cv",
        "invoice",
        "receipt",
        "newsletter",
        "unsubscribe",
        "out of office",
    ),
    filename_rules=(
        PatternRule(
            "strong_indicator",
            _terms(
                r"job[\s_-]*description", "jd", r"job[\s_-]*spec(?:ification)?",
                r"position[\s_-]*description", r"role[\s_-]*(?:description|profile)",
            ),
            40,
        ),
        PatternRule(
            "vacancy_terms",
            _terms("vacancy", "opening", "requisition", r"job[\s_-]*posting", "hiring", "mandate"),
            25,
        ),
        PatternRule("role_terms", _terms("position", "role", "job", "requirement"), 15),
        PatternRule("generic_document", GENERIC_DOCUMENT_TERMS, 8),
        PatternRule(
            "negative",
            _terms(
                r"r[eé]sum[eé]", "cv", r"curriculum[\s_-]*vitae", "invoice",
                "receipt", "statement", "payslip",
            ),
            0,
        ),
    ),
    subject_rules=(
        PatternRule(
            "hiring_intent",
            _terms(
                r"job\s+description", "jd", r"job\s+opening", r"new\s+requirement",
                r"new\s+position", r"new\s+vacancy", r"hiring\s+for", r"we\s+are\s+hiring",
                "requisition",
            ),
            30,
        ),
        PatternRule(
            "role_terms",
            _terms("vacancy", "opening", "position", "role", "requirement", "mandate", "opportunity"),
            20,
        ),
        PatternRule(
            "urgency_terms",
            _terms("urgent", r"immediate\s+joiner", r"full[\s-]*time", "contract", "freelance"),
            10,
        ),
        PatternRule("negative", _terms("invoice", "receipt", "newsletter", "unsubscribe"), 0),
    ),
    preferred_sender_domain_class=SenderDomainClass.CORPORATE,
    prompt_template="job_description",
)

POLICIES: Dict[str, Policy] = {
    RESUME_POLICY.name: RESUME_POLICY,
    JOB_DESCRIPTION_POLICY.name: JOB_DESCRIPTION_POLICY,
}

_ALIASES = {
    "cv": "resume",
    "jd": "job_description",
    "job-description": "job_description",
}

# Fields that configuration files may override
TUNABLE_FIELDS = (
    "high_threshold",
    "low_threshold",
    "ai_confidence_cutoff",
    "ai_weight",
    "size_range",
    "typical_size_range",
)


def get_policy(name: str) -> Policy:
    """
    Look up a built-in policy by name.

    Raises:
        ConfigurationError: If the name is unknown
    """
    key = (name or "").strip().lower()
    key = _ALIASES.get(key, key)
    if key not in POLICIES:
        raise ConfigurationError(
            f"Unknown policy: '{name}'. Available: {sorted(POLICIES)}"
        )
    return POLICIES[key]


def policy_with_overrides(policy: Policy, **overrides) -> Policy:
    """
    Derive a policy with some tunable fields replaced.

    Raises:
        ConfigurationError: For unknown fields or if the result is invalid
    """
    unknown = set(overrides) - set(TUNABLE_FIELDS)
    if unknown:
        raise ConfigurationError(f"Cannot override policy fields: {sorted(unknown)}")
    for key in ("size_range", "typical_size_range"):
        if key in overrides:
            overrides[key] = tuple(overrides[key])
    return replace(policy, **overrides)
