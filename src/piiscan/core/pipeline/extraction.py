"""Runs pattern matchers over text and emits raw occurrences with context."""

from __future__ import annotations

import logging
import os
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from ...exceptions import ExtractionCancelledError
from ..cancellation import CancellationToken
from ..constants import (
    CONTEXT_CACHE_MIN_MATCHES,
    MATCHER_TIMEOUT,
    PARALLEL_MATCHER_THRESHOLD,
    PARALLEL_TEXT_THRESHOLD,
    CANCEL_POLL_INTERVAL,
)
from ..context import ContextCache, extract_context
from ..matchers import MatcherRegistry, PatternMatcher, build_default_registry
from ..types import Occurrence
from .config import ExtractionConfig

logger = logging.getLogger(__name__)

# How many spans a worker processes between cancellation checks
_CANCEL_CHECK_EVERY = 256


@dataclass(frozen=True)
class ExtractionRun:
    """Raw output of one pipeline run."""
    occurrences: List[Occurrence] = field(default_factory=list)
    failed_matchers: Tuple[str, ...] = ()
    parallel: bool = False
    matcher_count: int = 0

    @property
    def is_complete(self) -> bool:
        return not self.failed_matchers


class _SharedContextCache:
    """One ContextCache per run, built on first use by whichever worker needs it."""

    def __init__(self, text: str):
        self._text = text
        self._lock = threading.Lock()
        self._cache: Optional[ContextCache] = None

    def get(self) -> ContextCache:
        if self._cache is None:
            with self._lock:
                if self._cache is None:
                    self._cache = ContextCache(self._text)
        return self._cache


class ExtractionPipeline:
    """
    Resolves filters to matchers and runs them, sequentially or in a thread pool.

    Parallel mode is used only when the text is longer than
    parallel_text_threshold AND more than parallel_matcher_threshold
    matchers are enabled. Each worker runs one matcher end to end and owns
    its occurrence list; nothing is shared between workers except the
    immutable matchers and the read-only text.

    Occurrence order is unspecified. Callers deduplicate with EntityStore,
    whose result does not depend on arrival order.
    """

    def __init__(
        self,
        registry: MatcherRegistry | None = None,
        parallel_text_threshold: int = PARALLEL_TEXT_THRESHOLD,
        parallel_matcher_threshold: int = PARALLEL_MATCHER_THRESHOLD,
        max_workers: int | None = None,
        context_cache_min_matches: int = CONTEXT_CACHE_MIN_MATCHES,
        timeout: float = MATCHER_TIMEOUT,
    ):
        self.registry = registry if registry is not None else build_default_registry()
        self.parallel_text_threshold = parallel_text_threshold
        self.parallel_matcher_threshold = parallel_matcher_threshold
        self.max_workers = max_workers
        self.context_cache_min_matches = context_cache_min_matches
        self.timeout = timeout

    def resolve(self, config: ExtractionConfig | None = None) -> List[PatternMatcher]:
        """Concrete matchers for *config*. Raises FilterConfigurationError on unknown locales."""
        config = config or ExtractionConfig()
        return self.registry.resolve(kinds=config.kinds, locales=config.locales)

    def should_parallelize(self, text_length: int, matcher_count: int) -> bool:
        return (
            text_length > self.parallel_text_threshold
            and matcher_count > self.parallel_matcher_threshold
        )

    def worker_count(self, matcher_count: int) -> int:
        workers = min(os.cpu_count() or 1, matcher_count)
        if self.max_workers:
            workers = min(workers, self.max_workers)
        return max(1, workers)

    def extract(
        self,
        text: str,
        config: ExtractionConfig | None = None,
        cancel: CancellationToken | None = None,
    ) -> List[Occurrence]:
        """Raw occurrences for every enabled matcher, in no guaranteed order."""
        return self.run(text, config, cancel).occurrences

    def run(
        self,
        text: str,
        config: ExtractionConfig | None = None,
        cancel: CancellationToken | None = None,
        parallel: bool | None = None,
    ) -> ExtractionRun:
        """
        Run the pipeline and report which matchers failed.

        Args:
            text: Text to scan
            config: Kind/locale filters (default: everything)
            cancel: Token checked before each matcher and while waiting on workers
            parallel: Force a mode; None picks one from the size thresholds

        Raises:
            FilterConfigurationError: Unknown locale in config
            ExtractionCancelledError: Token cancelled or deadline passed
        """
        matchers = self.resolve(config)
        if cancel is not None:
            cancel.raise_if_cancelled()

        if not text or not matchers:
            return ExtractionRun(matcher_count=len(matchers))

        use_parallel = (
            self.should_parallelize(len(text), len(matchers)) if parallel is None else parallel
        )
        start_time = time.time()
        contexts = _SharedContextCache(text)

        if use_parallel:
            per_matcher, failed = self._run_parallel(matchers, text, contexts, cancel)
        else:
            per_matcher, failed = self._run_sequential(matchers, text, contexts, cancel)

        occurrences: List[Occurrence] = []
        for i in range(len(matchers)):
            occurrences.extend(per_matcher.get(i, ()))

        elapsed_ms = (time.time() - start_time) * 1000
        logger.debug(
            f"Pipeline ran {len(matchers)} matchers "
            f"({'parallel' if use_parallel else 'sequential'}) over {len(text)} chars: "
            f"{len(occurrences)} occurrences, {len(failed)} failed, {elapsed_ms:.1f}ms"
        )
        return ExtractionRun(
            occurrences=occurrences,
            failed_matchers=tuple(failed),
            parallel=use_parallel,
            matcher_count=len(matchers),
        )

    def _run_sequential(
        self,
        matchers: List[PatternMatcher],
        text: str,
        contexts: _SharedContextCache,
        cancel: CancellationToken | None,
    ) -> Tuple[Dict[int, List[Occurrence]], List[str]]:
        results: Dict[int, List[Occurrence]] = {}
        failed: List[str] = []
        for i, matcher in enumerate(matchers):
            if cancel is not None:
                cancel.raise_if_cancelled()
            try:
                results[i] = self._run_matcher(matcher, text, contexts, cancel)
            except ExtractionCancelledError:
                raise
            except Exception as e:
                logger.error(f"Matcher {matcher.name} failed: {e!r}")
                failed.append(matcher.name)
        return results, failed

    def _run_parallel(
        self,
        matchers: List[PatternMatcher],
        text: str,
        contexts: _SharedContextCache,
        cancel: CancellationToken | None,
    ) -> Tuple[Dict[int, List[Occurrence]], List[str]]:
        results: Dict[int, List[Occurrence]] = {}
        failed: List[str] = []
        workers = self.worker_count(len(matchers))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="piiscan-match")
        logger.debug(f"Dispatching {len(matchers)} matchers to {workers} workers")

        try:
            future_to_index: Dict[Future, int] = {
                executor.submit(self._run_matcher, m, text, contexts, cancel): i
                for i, m in enumerate(matchers)
            }
            pending = set(future_to_index)
            deadline = time.monotonic() + self.timeout

            while pending:
                if cancel is not None:
                    cancel.raise_if_cancelled()
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    timed_out = sorted(matchers[future_to_index[f]].name for f in pending)
                    logger.error(f"Matcher timeout ({self.timeout}s): {timed_out}")
                    failed.extend(timed_out)
                    break

                poll = min(remaining, CANCEL_POLL_INTERVAL) if cancel is not None else remaining
                done, pending = wait(pending, timeout=poll, return_when=FIRST_COMPLETED)
                for future in done:
                    matcher = matchers[future_to_index[future]]
                    try:
                        results[future_to_index[future]] = future.result()
                    except ExtractionCancelledError:
                        raise
                    except Exception as e:
                        logger.error(f"Matcher {matcher.name} failed: {e!r}")
                        failed.append(matcher.name)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return results, failed

    def _run_matcher(
        self,
        matcher: PatternMatcher,
        text: str,
        contexts: _SharedContextCache,
        cancel: CancellationToken | None,
    ) -> List[Occurrence]:
        """Match and attach context for one matcher. Exceptions propagate to the coordinator."""
        if cancel is not None:
            cancel.raise_if_cancelled()

        spans = matcher.find_all(text)
        if not spans:
            return []

        context_of: Callable[[int, int], str]
        if len(spans) >= self.context_cache_min_matches:
            context_of = contexts.get().extract
        else:
            def context_of(start: int, end: int) -> str:
                return extract_context(text, start, end)

        occurrences: List[Occurrence] = []
        for n, (start, end) in enumerate(spans):
            if cancel is not None and n % _CANCEL_CHECK_EVERY == 0:
                cancel.raise_if_cancelled()
            value = text[start:end]
            occurrences.append(
                Occurrence(
                    kind=matcher.kind,
                    raw_value=value,
                    span_start=start,
                    span_end=end,
                    context=context_of(start, end),
                    attributes=matcher.tag(value),
                )
            )
        return occurrences


__all__ = [
    "ExtractionPipeline",
    "ExtractionRun",
]
