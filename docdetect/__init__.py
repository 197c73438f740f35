"""
docdetect - find the résumé (or job description) among an email's attachments.

Typical use:
    from docdetect import DetectionOrchestrator, RESUME_POLICY
    summary = await DetectionOrchestrator().run(email, attachments, loader, provider, RESUME_POLICY)
"""

from .__version__ import __version__
from .core import (
    AttachmentMetadata,
    DetectionOrchestrator,
    EmailContext,
    JOB_DESCRIPTION_POLICY,
    ProcessingSummary,
    RESUME_POLICY,
    get_policy,
    run_detection,
)

__all__ = [
    "__version__",
    "AttachmentMetadata",
    "DetectionOrchestrator",
    "EmailContext",
    "JOB_DESCRIPTION_POLICY",
    "ProcessingSummary",
    "RESUME_POLICY",
    "get_policy",
    "run_detection",
]
