"""
Orchestrator module - per-email detection pipeline.

Flow: Stage 1 (metadata filter, whole email) -> Stage 2 (heuristic score,
per attachment) -> band split -> Stage 3 (download + AI, medium band only,
concurrent) -> confidence blending -> summary.

Per-attachment states:
    NEW -> REJECTED_STAGE1
    NEW -> SCORED -> ACCEPTED_HIGH
    NEW -> SCORED -> REJECTED_LOW
    NEW -> SCORED -> PENDING_AI -> CLASSIFIED

Stage 3 failures are captured per attachment and never abort the email.
"""

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from .ai_classifier import AIClassifier
from .confidence import ConfidenceBlender
from .content import ContentPipeline, make_content_pipeline
from .errors import ConfigurationError, ContentError
from .heuristic import HeuristicScorer, assign_band
from .metadata_filter import MetadataFilter
from .models import (
    AIVerdict,
    AttachmentMetadata,
    AttachmentState,
    Band,
    DetectionResult,
    EmailContext,
    FALLBACK_VERDICT,
    FilterDecision,
    ProcessingSummary,
    ScoreBreakdown,
)
from .policy import Policy
from .prompt_engine import PromptEngine, get_prompt_engine
from .rate_limiter import ConcurrencyLimiter, get_concurrency_limiter
from ..providers.base import CompletionSettings

logger = logging.getLogger(__name__)

DEFAULT_DEADLINE_SECONDS = 60.0

DEADLINE_VERDICT = AIVerdict(
    is_match=False, confidence=0.0, reason="deadline exceeded", insufficient_text=True
)


@dataclass
class _PendingAttachment:
    index: int
    attachment: AttachmentMetadata
    stage2: ScoreBreakdown


class DetectionOrchestrator:
    """
    Runs the three-stage pipeline for one email at a time.

    One instance can serve many concurrent runs; it holds no per-email
    state. All runs share the Stage 3 concurrency limiter: the process-wide
    one unless an explicit limiter is passed. The first orchestrator to create
    the process-wide limiter fixes its limit for the process.

    Usage:
        orchestrator = DetectionOrchestrator({"max_concurrency": 3})
        summary = await orchestrator.run(email, attachments, loader, provider, RESUME_POLICY)
    """

    def __init__(
        self,
        config: Optional[Dict] = None,
        limiter: Optional[ConcurrencyLimiter] = None,
        prompt_engine: Optional[PromptEngine] = None,
    ):
        """
        Args:
            config: Pipeline configuration with:
                - max_concurrency: Stage 3 concurrency limit (default 4)
                - deadline_seconds: Per-email deadline (default 60)
                - max_output_tokens: Model output budget (default 150)
                - request_timeout: Per-request timeout passed to providers
            limiter: Explicit limiter instead of the process-wide one
            prompt_engine: Explicit prompt engine instead of the global one

        Raises:
            ConfigurationError: deadline_seconds is not positive, or
                max_concurrency differs from the limit of the process-wide
                limiter already created by an earlier orchestrator
        """
        config = config or {}

        self.deadline_seconds = float(config.get("deadline_seconds", DEFAULT_DEADLINE_SECONDS))
        if self.deadline_seconds <= 0:
            raise ConfigurationError("deadline_seconds must be positive")

        self.settings = CompletionSettings(
            temperature=0.0,
            max_tokens=int(config.get("max_output_tokens", 150)),
            timeout=float(config.get("request_timeout", 30.0)),
        )
        self.limiter = limiter or get_concurrency_limiter(config.get("max_concurrency"))
        self.prompt_engine = prompt_engine or get_prompt_engine(config.get("templates_dir"))

        self.metadata_filter = MetadataFilter()
        self.scorer = HeuristicScorer()
        self.blender = ConfidenceBlender()

    async def run(
        self,
        email: EmailContext,
        attachments: Sequence[AttachmentMetadata],
        content_loader: Optional[Callable] = None,
        ai_caller: Optional[Callable] = None,
        policy: Optional[Policy] = None,
    ) -> ProcessingSummary:
        """
        Classify every attachment of one email.

        Args:
            email: Sender and subject
            attachments: Attachments in submission order
            content_loader: load(attachment) -> bytes, sync or async
            ai_caller: complete(prompt, settings) -> str, sync or async
            policy: Document-type policy

        Returns:
            ProcessingSummary with one result per attachment, in input order

        Raises:
            TypeError: Missing policy, or a medium-band attachment with no
                content loader / AI caller to handle it
        """
        if not isinstance(policy, Policy):
            raise TypeError(f"policy must be a Policy, got {type(policy).__name__}")

        start = time.monotonic()
        attachments = list(attachments)
        results: List[Optional[DetectionResult]] = [None] * len(attachments)

        # Stage 1
        decision = self.metadata_filter.filter(email, attachments, policy)
        survivor_ids = {id(a) for a in decision.survivors}
        rejection_reason = decision.reason if not decision.should_process else "filtered_by_metadata"

        # Stage 2
        pending: List[_PendingAttachment] = []
        for index, attachment in enumerate(attachments):
            if id(attachment) not in survivor_ids:
                results[index] = self._stage1_rejection(attachment, rejection_reason)
                continue

            breakdown = self.scorer.score(email, attachment, policy)
            band = assign_band(breakdown.total, policy)

            if band is Band.MEDIUM:
                pending.append(_PendingAttachment(index, attachment, breakdown))
                continue

            final, is_match = self.blender.finalize_without_ai(breakdown.total, band)
            results[index] = DetectionResult(
                attachment=attachment,
                stage2=breakdown,
                final_confidence=final,
                is_match=is_match,
                reason="high_heuristic_score" if is_match else "low_heuristic_score",
                state=AttachmentState.ACCEPTED_HIGH if is_match else AttachmentState.REJECTED_LOW,
                band=band,
            )

        # Stage 3
        if pending:
            verdicts = await self._run_stage3(pending, content_loader, ai_caller, policy, start)
            for item, (verdict, reason) in zip(pending, verdicts):
                final, is_match = self.blender.finalize(item.stage2.total, verdict, policy)
                results[item.index] = DetectionResult(
                    attachment=item.attachment,
                    stage2=item.stage2,
                    final_confidence=final,
                    is_match=is_match,
                    reason=reason,
                    state=AttachmentState.CLASSIFIED,
                    band=Band.MEDIUM,
                    ai_verdict=verdict,
                )

        summary = self._summarize(results, decision, policy, start)
        logger.info(
            f"[{policy.name}] {len(attachments)} attachment(s), {len(pending)} sent to AI, "
            f"detected={summary.detected} in {summary.processing_time_ms}ms"
        )
        return summary

    def run_sync(
        self,
        email: EmailContext,
        attachments: Sequence[AttachmentMetadata],
        content_loader: Optional[Callable] = None,
        ai_caller: Optional[Callable] = None,
        policy: Optional[Policy] = None,
    ) -> ProcessingSummary:
        """
        Blocking wrapper around run() for callers without an event loop.

        Returns once the deadline is reached even if a blocking collaborator
        is still running; that thread is abandoned, not joined.
        """
        return asyncio.run(self.run(email, attachments, content_loader, ai_caller, policy))

    async def _run_stage3(
        self,
        pending: List[_PendingAttachment],
        content_loader: Optional[Callable],
        ai_caller: Optional[Callable],
        policy: Policy,
        start: float,
    ) -> List[tuple]:
        if content_loader is None or ai_caller is None:
            raise TypeError(
                "content_loader and ai_caller are required when attachments need AI review"
            )

        # Blocking collaborators run on a pool owned by this call. It is shut
        # down without joining, so a download or model call still blocked
        # past the deadline cannot hold the caller.
        executor = ThreadPoolExecutor(
            max_workers=len(pending), thread_name_prefix="docdetect-stage3"
        )
        try:
            content = make_content_pipeline(content_loader, executor)
            classifier = AIClassifier(
                ai_caller, self.settings, self.prompt_engine, executor=executor
            )
            tasks = [
                asyncio.create_task(self._classify_one(content, classifier, item, policy))
                for item in pending
            ]
            remaining = self.deadline_seconds - (time.monotonic() - start)
            done, not_done = await asyncio.wait(tasks, timeout=max(0.0, remaining))

            if not_done:
                logger.warning(
                    f"[{policy.name}] deadline of {self.deadline_seconds}s reached, "
                    f"cancelling {len(not_done)} Stage 3 task(s)"
                )
                for task in not_done:
                    task.cancel()
                await asyncio.gather(*not_done, return_exceptions=True)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        # Joined by position in `pending`, not by completion order
        outcomes = []
        for task in tasks:
            if task in done and not task.cancelled() and task.exception() is None:
                outcomes.append(task.result())
            elif task in done:
                outcomes.append((FALLBACK_VERDICT, "stage3_error"))
            else:
                outcomes.append((DEADLINE_VERDICT, "deadline_exceeded"))
        return outcomes

    async def _classify_one(
        self,
        content: ContentPipeline,
        classifier: AIClassifier,
        item: _PendingAttachment,
        policy: Policy,
    ) -> tuple:
        async with self.limiter.slot():
            try:
                text = await content.load_text(item.attachment)
            except ContentError as e:
                logger.warning(f"[{policy.name}] {e}; treating as insufficient text")
                verdict = AIVerdict(
                    is_match=False,
                    confidence=0.0,
                    reason=f"content unavailable: {type(e).__name__}",
                    insufficient_text=True,
                )
                return verdict, "content_unavailable"

            try:
                verdict = await classifier.classify(text, policy)
            except Exception as e:
                logger.error(f"[{policy.name}] unexpected Stage 3 error: {e}", exc_info=True)
                return FALLBACK_VERDICT, "stage3_error"

        return verdict, "ai_classified"

    def _stage1_rejection(self, attachment: AttachmentMetadata, reason: str) -> DetectionResult:
        return DetectionResult(
            attachment=attachment,
            stage2=None,
            final_confidence=0.0,
            is_match=False,
            reason=reason,
            state=AttachmentState.REJECTED_STAGE1,
        )

    def _summarize(
        self,
        results: List[Optional[DetectionResult]],
        decision: FilterDecision,
        policy: Policy,
        start: float,
    ) -> ProcessingSummary:
        final_results: List[DetectionResult] = [r for r in results if r is not None]

        best: Optional[DetectionResult] = None
        for result in final_results:
            # Strict comparison keeps the earliest attachment on ties
            if result.is_match and (best is None or result.final_confidence > best.final_confidence):
                best = result

        return ProcessingSummary(
            detected=best is not None,
            results=final_results,
            processing_time_ms=int((time.monotonic() - start) * 1000),
            best_result=best,
            policy_name=policy.name,
            filter_decision=decision,
        )


def run_detection(
    email: EmailContext,
    attachments: Sequence[AttachmentMetadata],
    content_loader: Optional[Callable],
    ai_caller: Optional[Callable],
    policy: Policy,
    config: Optional[Dict[str, Any]] = None,
) -> ProcessingSummary:
    """One-shot blocking helper: build an orchestrator and run it once."""
    return DetectionOrchestrator(config).run_sync(
        email, attachments, content_loader, ai_caller, policy
    )
