"""
Confidence blending between the Stage 2 score and the Stage 3 verdict.

    insufficient text            -> stage2 * 0.5
    match and confidence >= cut  -> min(100, stage2 + confidence * weight)
    otherwise                    -> max(0, stage2 - (1 - confidence) * weight)

An attachment is accepted when the blended value reaches the policy's high
threshold. HIGH and LOW band attachments never reach this module: their
final confidence is the Stage 2 total.
"""

import logging
from typing import Tuple

from .models import AIVerdict, Band, clamp
from .policy import Policy

logger = logging.getLogger(__name__)

INSUFFICIENT_TEXT_FACTOR = 0.5


class ConfidenceBlender:
    """
    Deterministic combination of heuristic score and AI verdict.

    Usage:
        blender = ConfidenceBlender()
        final, accepted = blender.finalize(55, verdict, RESUME_POLICY)
    """

    def blend(self, stage2_score: float, verdict: AIVerdict, policy: Policy) -> float:
        """
        Blend a Stage 2 score with an AI verdict.

        Args:
            stage2_score: Stage 2 total (0-100)
            verdict: Stage 3 verdict
            policy: Supplies ai_confidence_cutoff and ai_weight

        Returns:
            Final confidence in [0, 100]
        """
        if verdict.insufficient_text:
            final = stage2_score * INSUFFICIENT_TEXT_FACTOR
        elif verdict.is_match and verdict.confidence >= policy.ai_confidence_cutoff:
            final = min(100.0, stage2_score + verdict.confidence * policy.ai_weight)
        else:
            final = max(0.0, stage2_score - (1.0 - verdict.confidence) * policy.ai_weight)

        return round(clamp(final, 0.0, 100.0), 4)

    def passes_threshold(self, final_confidence: float, policy: Policy) -> bool:
        """Accept when the final confidence reaches the high threshold."""
        passes = final_confidence >= policy.high_threshold
        if not passes:
            logger.debug(
                f"Confidence {final_confidence:.2f} below threshold "
                f"{policy.high_threshold} for '{policy.name}'"
            )
        return passes

    def finalize(
        self, stage2_score: float, verdict: AIVerdict, policy: Policy
    ) -> Tuple[float, bool]:
        """Blend and apply the acceptance threshold in one step."""
        final = self.blend(stage2_score, verdict, policy)
        return final, self.passes_threshold(final, policy)

    def finalize_without_ai(self, stage2_score: float, band: Band) -> Tuple[float, bool]:
        """HIGH/LOW band shortcut: Stage 2 total is final, HIGH is a match."""
        return float(stage2_score), band is Band.HIGH


def blend(stage2_score: float, verdict: AIVerdict, policy: Policy) -> float:
    """Module-level shortcut for ConfidenceBlender().blend()."""
    return ConfidenceBlender().blend(stage2_score, verdict, policy)
