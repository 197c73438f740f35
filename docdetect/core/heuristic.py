"""
Stage 2: deterministic attachment scoring from metadata.

Scores each surviving attachment 0-100 without reading its content:

- filename:   first matching row of the policy filename table (default 8)
- subject:    first matching row of the policy subject table (default 5)
- properties: 12 for an allowed MIME type + 8 for a typical size (max 20)
- sender:     0 if automated, else 5 + 5 when the domain class matches the
              policy preference (max 10)

The total is then mapped to a band. Lower bounds are inclusive:
total >= high_threshold is HIGH, low_threshold <= total < high_threshold
is MEDIUM, anything below is LOW.
"""

import logging
from typing import Sequence

from .metadata_filter import is_automated_sender, sender_domain
from .models import AttachmentMetadata, Band, EmailContext, ScoreBreakdown
from .policy import PatternRule, Policy, SenderDomainClass

logger = logging.getLogger(__name__)

MIME_TYPE_POINTS = 12
TYPICAL_SIZE_POINTS = 8
HUMAN_SENDER_POINTS = 5
DOMAIN_CLASS_POINTS = 5


def evaluate_rules(rules: Sequence[PatternRule], text: str, default: int) -> int:
    """
    Score text against an ordered table. First matching row wins.

    Args:
        rules: Ordered pattern table
        text: Filename or subject
        default: Score when no row matches

    Returns:
        Score of the first matching row, or default
    """
    for rule in rules:
        if rule.matches(text):
            return rule.score
    return default


def classify_sender_domain(sender: str, policy: Policy) -> SenderDomainClass:
    """Personal webmail domain or anything else (corporate)."""
    if sender_domain(sender) in policy.personal_domains:
        return SenderDomainClass.PERSONAL
    return SenderDomainClass.CORPORATE


def assign_band(total: int, policy: Policy) -> Band:
    """Map a Stage 2 total to a confidence band."""
    if total >= policy.high_threshold:
        return Band.HIGH
    if total >= policy.low_threshold:
        return Band.MEDIUM
    return Band.LOW


class HeuristicScorer:
    """
    Pure metadata scorer. Same inputs always give the same breakdown.
    """

    def score(
        self,
        email: EmailContext,
        attachment: AttachmentMetadata,
        policy: Policy,
    ) -> ScoreBreakdown:
        """
        Score a single attachment.

        Args:
            email: Sender and subject of the message
            attachment: Attachment metadata
            policy: Document-type policy

        Returns:
            ScoreBreakdown with every field clamped to [0, 100]
        """
        breakdown = ScoreBreakdown.from_parts(
            filename_score=self.filename_score(attachment.filename, policy),
            subject_score=self.subject_score(email.subject, policy),
            properties_score=self.properties_score(attachment, policy),
            sender_score=self.sender_score(email.sender_address, policy),
        )
        logger.debug(
            f"Stage 2 [{policy.name}] {attachment.filename!r}: {breakdown.to_dict()}"
        )
        return breakdown

    def filename_score(self, filename: str, policy: Policy) -> int:
        return evaluate_rules(policy.filename_rules, filename or "", policy.filename_default)

    def subject_score(self, subject: str, policy: Policy) -> int:
        return evaluate_rules(policy.subject_rules, subject or "", policy.subject_default)

    def properties_score(self, attachment: AttachmentMetadata, policy: Policy) -> int:
        score = 0
        if policy.allows_mime_type(attachment.mime_type):
            score += MIME_TYPE_POINTS
        if policy.size_is_typical(attachment.size_bytes):
            score += TYPICAL_SIZE_POINTS
        return score

    def sender_score(self, sender: str, policy: Policy) -> int:
        if is_automated_sender(sender, policy):
            return 0
        score = HUMAN_SENDER_POINTS
        if not sender_domain(sender):
            return score
        if classify_sender_domain(sender, policy) is policy.preferred_sender_domain_class:
            score += DOMAIN_CLASS_POINTS
        return score
