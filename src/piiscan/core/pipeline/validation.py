"""
Confidence-gated validation of extracted entities.

Each entity is sent to a Scorer together with a context string. Failed or
timed-out calls are retried with linear backoff. Only outcomes at or above
min_confidence are attached; anything else leaves the entity unannotated,
which means "not confidently judged" rather than "invalid".

Validation never fails an extraction call. The only exception that escapes
is ExtractionCancelledError.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Callable, List, Optional, Sequence

from ...exceptions import ExtractionCancelledError, ScoringError
from ..cancellation import CancellationToken
from ..constants import CANCEL_POLL_INTERVAL, MAX_SCORER_WORKERS, VALIDATION_CONTEXT_WINDOW
from ..scoring.base import BaseScorer, ScoreResult
from ..types import Entity, ValidationOutcome, ValidationSummary
from .config import ValidationConfig

logger = logging.getLogger(__name__)

__all__ = [
    "ValidationLayer",
    "validation_context",
    "summarize",
]

# Failures that count as one failed attempt
_SCORER_ERRORS = (
    ScoringError,
    TimeoutError,
    FuturesTimeoutError,
    ConnectionError,
    OSError,
    RuntimeError,
    ValueError,
    KeyError,
    TypeError,
)


def validation_context(entity: Entity, source_text: str, window: int = VALIDATION_CONTEXT_WINDOW) -> str:
    """
    Context handed to the scorer for *entity*.

    The first recorded context wins. Otherwise a window of *window* chars on
    each side of the value's first occurrence in *source_text*; the full
    text when the value does not occur in it.
    """
    if entity.contexts:
        return entity.contexts[0]
    index = source_text.find(entity.value)
    if index < 0:
        return source_text
    start = max(0, index - window)
    end = min(len(source_text), index + len(entity.value) + window)
    return source_text[start:end]


def summarize(entities: Sequence[Entity], scorer: BaseScorer) -> ValidationSummary:
    """Statistics over the outcomes attached to *entities*."""
    outcomes = [e.validation for e in entities if e.validation is not None]
    accepted = sum(1 for o in outcomes if o.accepted)
    avg = sum(o.confidence for o in outcomes) / len(outcomes) if outcomes else 0.0
    return ValidationSummary(
        total=len(outcomes),
        accepted=accepted,
        rejected=len(outcomes) - accepted,
        not_validated=len(entities) - len(outcomes),
        avg_confidence=avg,
        provider_id=scorer.provider_id,
        model_id=scorer.model_id,
    )


class ValidationLayer:
    """
    Submits entities to a scorer with retry, timeout and confidence gating.

    Usage:
        layer = ValidationLayer(ValidationConfig(min_confidence=0.8))
        summary = layer.validate(entities, text, RuleScorer())

    Args:
        config: Default tuning, overridable per validate() call
        sleep: Backoff sleep used when no cancellation token is given
        max_workers: Threads available for in-flight scorer calls
    """

    def __init__(
        self,
        config: ValidationConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
        max_workers: int = MAX_SCORER_WORKERS,
    ):
        self.config = config or ValidationConfig()
        self._sleep = sleep
        self.max_workers = max_workers

    def validate(
        self,
        entities: Sequence[Entity],
        source_text: str,
        scorer: BaseScorer,
        config: ValidationConfig | None = None,
        cancel: CancellationToken | None = None,
    ) -> ValidationSummary:
        """
        Annotate *entities* in place and return run statistics.

        Raises:
            ExtractionCancelledError: Token cancelled or deadline passed
        """
        config = config or self.config
        if cancel is not None:
            cancel.raise_if_cancelled()

        if not entities:
            return summarize(entities, scorer)

        if not scorer.is_available():
            logger.warning(f"Scorer {scorer!r} not available, skipping validation")
            return summarize(entities, scorer)

        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="piiscan-score")
        start_time = time.time()
        try:
            for entity in entities:
                if cancel is not None:
                    cancel.raise_if_cancelled()
                context = validation_context(entity, source_text)
                result = self._score_with_retries(executor, scorer, entity, context, config, cancel)
                if result is None:
                    continue
                if result.confidence >= config.min_confidence:
                    entity.validation = ValidationOutcome(
                        accepted=result.accepted,
                        confidence=result.confidence,
                        reasoning=result.reasoning,
                        provider_id=scorer.provider_id,
                        model_id=scorer.model_id,
                    )
                else:
                    logger.debug(
                        f"Dropped {entity.kind.value} outcome below threshold "
                        f"({result.confidence:.2f} < {config.min_confidence:.2f})"
                    )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        summary = summarize(entities, scorer)
        logger.info(
            f"Validated {summary.total}/{len(entities)} entities with {scorer.provider_id} "
            f"({summary.accepted} accepted, {summary.rejected} rejected) "
            f"in {(time.time() - start_time) * 1000:.1f}ms"
        )
        return summary

    def _score_with_retries(
        self,
        executor: ThreadPoolExecutor,
        scorer: BaseScorer,
        entity: Entity,
        context: str,
        config: ValidationConfig,
        cancel: CancellationToken | None,
    ) -> Optional[ScoreResult]:
        """First successful result within max_attempts, or None."""
        for attempt in range(config.max_attempts):
            if attempt:
                self._backoff(attempt * config.backoff_seconds, cancel)
            if cancel is not None:
                cancel.raise_if_cancelled()
            try:
                return self._call(executor, scorer, entity, context, config.timeout, cancel)
            except ExtractionCancelledError:
                raise
            except _SCORER_ERRORS as e:
                logger.warning(
                    f"Scorer attempt {attempt + 1}/{config.max_attempts} failed "
                    f"for {entity.kind.value}: {e}"
                )
        logger.warning(
            f"Scorer gave up on {entity.kind.value} after {config.max_attempts} attempts"
        )
        return None

    def _backoff(self, delay: float, cancel: CancellationToken | None) -> None:
        if delay <= 0:
            return
        if cancel is None:
            self._sleep(delay)
        elif cancel.wait(delay):
            raise ExtractionCancelledError(reason=cancel.reason)

    def _call(
        self,
        executor: ThreadPoolExecutor,
        scorer: BaseScorer,
        entity: Entity,
        context: str,
        timeout: float,
        cancel: CancellationToken | None,
    ) -> ScoreResult:
        """One scorer call bounded by *timeout* and interruptible by *cancel*."""
        future: Future = executor.submit(scorer.score, entity.kind, entity.value, context)
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                future.cancel()
                raise TimeoutError(f"Scorer call exceeded {timeout}s")
            step = min(remaining, CANCEL_POLL_INTERVAL) if cancel is not None else remaining
            try:
                return future.result(timeout=step)
            except FuturesTimeoutError:
                if future.done():
                    raise
                if cancel is not None and cancel.cancelled:
                    future.cancel()
                    raise ExtractionCancelledError(reason=cancel.reason)
