"""
Stage 1: metadata-only admission gate.

Decides from sender, subject and attachment metadata alone whether an email
is worth scoring at all. Never downloads or reads attachment content.

Rules, in order (each rejects the whole email):
1. No attachments
2. Automated sender (noreply@, automated@, ...)
3. Negative keyword in subject
4. No attachment with an allowed MIME type and size
"""

import logging
from email.utils import parseaddr
from typing import List, Sequence

from .models import AttachmentMetadata, EmailContext, FilterDecision
from .policy import Policy

logger = logging.getLogger(__name__)


def _address(sender: str) -> str:
    # Accept both "jane@x.com" and "Jane Doe <jane@x.com>"
    _, addr = parseaddr(sender or "")
    return (addr or sender or "").strip().lower()


def sender_local_part(sender: str) -> str:
    """Part of the sender address before '@'."""
    addr = _address(sender)
    return addr.rsplit("@", 1)[0] if "@" in addr else addr


def sender_domain(sender: str) -> str:
    """Part of the sender address after '@', or '' if there is none."""
    addr = _address(sender)
    return addr.rsplit("@", 1)[1] if "@" in addr else ""


def is_automated_sender(sender: str, policy: Policy) -> bool:
    """Check the sender local-part against the policy's automated patterns."""
    local_part = sender_local_part(sender)
    if not local_part:
        return False
    return policy.is_automated_local_part(local_part)


def find_negative_keyword(subject: str, policy: Policy) -> str:
    """Return the first negative keyword contained in subject, or ''."""
    subject_lower = (subject or "").lower()
    for keyword in policy.negative_subject_keywords:
        if keyword.lower() in subject_lower:
            return keyword
    return ""


class MetadataFilter:
    """
    Email-level gate using only metadata.

    Usage:
        decision = MetadataFilter().filter(email, attachments, RESUME_POLICY)
        if decision.should_process:
            score(decision.survivors)
    """

    def filter(
        self,
        email: EmailContext,
        attachments: Sequence[AttachmentMetadata],
        policy: Policy,
    ) -> FilterDecision:
        """
        Apply the Stage 1 rules.

        Args:
            email: Sender and subject of the message
            attachments: All attachments of the message, in order
            policy: Document-type policy

        Returns:
            FilterDecision with the surviving attachments (empty on rejection)
        """
        if not attachments:
            return self._reject("no_attachments")

        if is_automated_sender(email.sender_address, policy):
            return self._reject("automated_sender")

        keyword = find_negative_keyword(email.subject, policy)
        if keyword:
            return self._reject(f"negative_subject_keyword:{keyword}")

        survivors: List[AttachmentMetadata] = []
        for attachment in attachments:
            if not policy.allows_mime_type(attachment.mime_type):
                logger.debug(
                    f"Dropping {attachment.filename!r}: MIME type "
                    f"{attachment.mime_type!r} not allowed by {policy.name}"
                )
                continue
            if not policy.size_in_range(attachment.size_bytes):
                logger.debug(
                    f"Dropping {attachment.filename!r}: size {attachment.size_bytes} "
                    f"outside {policy.size_range}"
                )
                continue
            survivors.append(attachment)

        if not survivors:
            return self._reject("no_eligible_attachments")

        return FilterDecision(should_process=True, reason="accepted", survivors=survivors)

    def _reject(self, reason: str) -> FilterDecision:
        logger.info(f"Stage 1 rejected email: {reason}")
        return FilterDecision(should_process=False, reason=reason, survivors=[])
