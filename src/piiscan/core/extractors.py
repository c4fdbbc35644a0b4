"""
Extractors: complete text-in, AggregateResult-out extraction methods.

Each extractor implements a common interface so that they can be composed
into an ensemble and looked up by name:

- RegexExtractor: pattern matchers -> deduplication -> optional validation
- LLMExtractor: asks a chat model to list sensitive values
- EnsembleExtractor: runs several extractors and combines their entity sets

Extractors are held by an explicit ExtractorRegistry owned by whoever
composes them; there is no process-wide registry.
"""

from __future__ import annotations

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError

from ..exceptions import (
    ConfigurationError,
    ExtractionCancelledError,
    ExtractionError,
    ScoringError,
)
from ..llm_client import BaseLLMClient
from .cancellation import CancellationToken
from .context import extract_context
from .matchers import MatcherRegistry, classify_card_network
from .matchers.patterns import iban_country
from .pipeline.config import ExtractionConfig, ValidationConfig
from .pipeline.dedup import EntityStore
from .pipeline.ensemble import CombinationStrategy, EnsembleCombiner
from .pipeline.extraction import ExtractionPipeline
from .pipeline.validation import ValidationLayer
from .scoring.base import BaseScorer
from .types import (
    ATTR_VERSION,
    AggregateResult,
    Entity,
    EntityKind,
    Occurrence,
    ValidationSummary,
    kind_rank,
)

logger = logging.getLogger(__name__)

__all__ = [
    "ExtractionMethod",
    "BaseExtractor",
    "RegexExtractor",
    "LLMExtractor",
    "EnsembleExtractor",
    "ExtractorRegistry",
]

# Failures that only take out the extractor that raised them
_SOURCE_ERRORS = (ExtractionError, ScoringError, RuntimeError, ValueError, OSError)


class ExtractionMethod(str, Enum):
    """How an extractor finds candidates."""
    REGEX = "regex"
    LLM = "llm"
    ML = "ml"
    HYBRID = "hybrid"


class BaseExtractor(ABC):
    """
    Base class for all extractors.

    Attributes:
        name: Unique name within a registry
        method: Extraction method tag
    """

    name: str = "base"
    method: ExtractionMethod = ExtractionMethod.REGEX

    @abstractmethod
    def extract(
        self,
        text: str,
        config: ExtractionConfig | None = None,
        cancel: CancellationToken | None = None,
    ) -> AggregateResult:
        """
        Extract entities from text.

        Args:
            text: Text to scan
            config: Kind/locale filters (default: everything)
            cancel: Cancellation token / deadline

        Returns:
            AggregateResult with entities sorted by (kind, value)

        Raises:
            ConfigurationError: Unknown filter values
            ExtractionCancelledError: Cancelled or deadline passed
        """
        pass

    def is_available(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, method={self.method.value!r})"


def _sorted(entities: Iterable[Entity]) -> List[Entity]:
    return sorted(entities, key=lambda e: (kind_rank(e.kind), e.value))


# =============================================================================
# REGEX
# =============================================================================


class RegexExtractor(BaseExtractor):
    """
    Pattern-based extraction with optional scorer validation.

    Usage:
        extractor = RegexExtractor(scorer=RuleScorer())
        result = extractor.extract(text, ExtractionConfig.from_names(locales=["US"]))
    """

    method = ExtractionMethod.REGEX

    def __init__(
        self,
        registry: MatcherRegistry | None = None,
        pipeline: ExtractionPipeline | None = None,
        scorer: BaseScorer | None = None,
        validation: ValidationLayer | None = None,
        name: str = "regex",
    ):
        self.pipeline = pipeline if pipeline is not None else ExtractionPipeline(registry)
        self.scorer = scorer
        self.validation = validation if validation is not None else ValidationLayer()
        self.name = name

    def extract(
        self,
        text: str,
        config: ExtractionConfig | None = None,
        cancel: CancellationToken | None = None,
        validation_config: ValidationConfig | None = None,
    ) -> AggregateResult:
        start_time = time.time()
        run = self.pipeline.run(text, config, cancel)
        entities = EntityStore().merge(run.occurrences)

        summary = None
        if self.scorer is not None:
            summary = self.validation.validate(
                entities, text, self.scorer, config=validation_config, cancel=cancel
            )

        result = AggregateResult.build(entities, summary, run.failed_matchers)
        logger.info(
            f"{self.name}: {len(run.occurrences)} occurrences -> {len(result)} entities "
            f"from {run.matcher_count} matchers in {(time.time() - start_time) * 1000:.1f}ms"
        )
        if run.failed_matchers:
            logger.warning(f"{self.name}: matchers skipped after failure: {list(run.failed_matchers)}")
        return result


# =============================================================================
# LLM
# =============================================================================


class LLMEntity(BaseModel):
    """One candidate as listed by the model."""

    type: str
    value: str
    context: str = ""


class LLMExtraction(BaseModel):
    """Documented response schema for extraction prompts."""

    entities: List[LLMEntity] = Field(default_factory=list)


_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)

_EXTRACTION_SYSTEM = (
    "You are a PII detection expert. Find personally identifiable information "
    "in the text you are given. Respond only with JSON."
)

_EXTRACTION_PROMPT = """Analyze the following text and extract all personally identifiable information (PII).

Look for these types:
- email: Email addresses
- phone: Phone numbers
- ssn: Social Security Numbers
- zipcode: ZIP or postal codes
- address: Street addresses
- creditcard: Credit card numbers
- ip: IP addresses
- bitcoin: Bitcoin addresses
- iban: International Bank Account Numbers
- pobox: P.O. Box addresses

Copy each value exactly as it appears in the text.

Respond in JSON format:
{{"entities": [{{"type": "email", "value": "john@corp.io", "context": "sentence containing the value"}}]}}

If no PII is found, respond with: {{"entities": []}}

Text to analyze:
{text}"""


def parse_extraction_response(text: str) -> LLMExtraction:
    """
    Parse a model reply into LLMExtraction.

    Accepts the documented object or a bare array, optionally wrapped in
    markdown code fences.

    Raises:
        ExtractionError: Reply is not JSON or does not match the schema
    """
    fenced = _FENCE_RE.search(text)
    body = fenced.group(1) if fenced else text
    try:
        data = json.loads(body.strip())
    except json.JSONDecodeError as e:
        raise ExtractionError(f"LLM response is not JSON: {e}", source_name="llm") from e

    if isinstance(data, list):
        data = {"entities": data}
    try:
        return LLMExtraction.model_validate(data)
    except ValidationError as e:
        raise ExtractionError(
            f"LLM response does not match schema ({e.error_count()} errors)", source_name="llm"
        ) from e


def _llm_attributes(kind: EntityKind, value: str) -> Dict[str, str]:
    if kind == EntityKind.CREDIT_CARD:
        return classify_card_network(value)
    if kind == EntityKind.IBAN:
        return iban_country(value)
    if kind == EntityKind.IP_ADDRESS:
        return {ATTR_VERSION: "ipv6" if ":" in value else "ipv4"}
    return {}


def _find_spans(text: str, value: str) -> List[tuple]:
    spans = []
    start = text.find(value)
    while start >= 0:
        spans.append((start, start + len(value)))
        start = text.find(value, start + len(value))
    return spans


class LLMExtractor(BaseExtractor):
    """
    Extraction by a chat model.

    Listed values are located in the text and turned into occurrences, so
    they go through the same EntityStore as regex matches. Values that do
    not appear verbatim in the text are dropped. Locale filters do not
    apply; kind filters do.
    """

    method = ExtractionMethod.LLM

    def __init__(self, client: BaseLLMClient, name: str = "llm"):
        self.client = client
        self.name = name

    def is_available(self) -> bool:
        return self.client.is_available()

    def build_prompt(self, text: str) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": _EXTRACTION_SYSTEM},
            {"role": "user", "content": _EXTRACTION_PROMPT.format(text=text)},
        ]

    def extract(
        self,
        text: str,
        config: ExtractionConfig | None = None,
        cancel: CancellationToken | None = None,
    ) -> AggregateResult:
        config = config or ExtractionConfig()
        if cancel is not None:
            cancel.raise_if_cancelled()
        if not text:
            return AggregateResult.build([])

        messages = self.build_prompt(text)
        response = self.client.chat(messages[1:], system=messages[0]["content"])
        if cancel is not None:
            cancel.raise_if_cancelled()
        if not response.success:
            raise ExtractionError(
                response.error or "LLM call failed", source_name=self.name, input_length=len(text)
            )

        parsed = parse_extraction_response(response.text)
        store = EntityStore()
        dropped = 0
        for item in parsed.entities:
            try:
                kind = EntityKind.from_value(item.type)
            except ValueError:
                logger.debug(f"{self.name}: ignoring unknown type {item.type!r}")
                continue
            if config.kinds and kind not in config.kinds:
                continue
            value = item.value.strip()
            spans = _find_spans(text, value) if value else []
            if not spans:
                dropped += 1
                continue
            attributes = _llm_attributes(kind, value)
            for start, end in spans:
                store.add(
                    Occurrence(
                        kind=kind,
                        raw_value=value,
                        span_start=start,
                        span_end=end,
                        context=extract_context(text, start, end),
                        attributes=attributes,
                    )
                )

        if dropped:
            logger.debug(f"{self.name}: dropped {dropped} values not present in the text")
        entities = store.entities()
        logger.info(
            f"{self.name}: {len(entities)} entities from {self.client.provider}/{self.client.model} "
            f"({response.tokens_used} tokens, {response.latency_ms:.0f}ms)"
        )
        return AggregateResult.build(entities)


# =============================================================================
# ENSEMBLE
# =============================================================================


def _combined_summary(entities: Sequence[Entity], summaries: List[ValidationSummary]) -> Optional[ValidationSummary]:
    if not summaries:
        return None
    outcomes = [e.validation for e in entities if e.validation is not None]
    accepted = sum(1 for o in outcomes if o.accepted)
    return ValidationSummary(
        total=len(outcomes),
        accepted=accepted,
        rejected=len(outcomes) - accepted,
        not_validated=len(entities) - len(outcomes),
        avg_confidence=sum(o.confidence for o in outcomes) / len(outcomes) if outcomes else 0.0,
        provider_id=",".join(sorted({s.provider_id for s in summaries})),
        model_id=",".join(sorted({s.model_id for s in summaries})),
    )


class EnsembleExtractor(BaseExtractor):
    """
    Runs several extractors over the same text and combines their results.

    A source that fails is reported in failed_sources and votes as an empty
    set, keeping its weight. Configuration errors and cancellation propagate.
    """

    method = ExtractionMethod.HYBRID

    def __init__(
        self,
        extractors: Sequence[BaseExtractor],
        strategy: CombinationStrategy | str = CombinationStrategy.UNION,
        weights: Optional[Sequence[float]] = None,
        name: str = "ensemble",
    ):
        if not extractors:
            raise ConfigurationError("EnsembleExtractor needs at least one extractor")
        if weights is not None and len(weights) != len(extractors):
            raise ConfigurationError(
                f"Got {len(weights)} weights for {len(extractors)} extractors",
                details={"field": "weights"},
            )
        self.extractors = list(extractors)
        self.combiner = EnsembleCombiner(strategy, weights)
        self.name = name

    @property
    def strategy(self) -> CombinationStrategy:
        return self.combiner.strategy

    def extract(
        self,
        text: str,
        config: ExtractionConfig | None = None,
        cancel: CancellationToken | None = None,
    ) -> AggregateResult:
        results: List[Optional[AggregateResult]] = []
        failed: List[str] = []

        for extractor in self.extractors:
            if cancel is not None:
                cancel.raise_if_cancelled()
            try:
                result = extractor.extract(text, config, cancel)
            except (ConfigurationError, ExtractionCancelledError):
                raise
            except _SOURCE_ERRORS as e:
                logger.error(f"Extractor {extractor.name} failed: {e}")
                failed.append(extractor.name)
                results.append(None)
                continue
            results.append(result)
            failed.extend(f"{extractor.name}:{source}" for source in result.failed_sources)

        entities = _sorted(self.combiner.combine(results))
        summaries = [
            r.validation_summary for r in results if r is not None and r.validation_summary is not None
        ]
        logger.info(
            f"{self.name}: combined {sum(r is not None for r in results)}/{len(results)} sources "
            f"with {self.combiner.strategy.value} into {len(entities)} entities"
        )
        return AggregateResult.build(entities, _combined_summary(entities, summaries), failed)


# =============================================================================
# REGISTRY
# =============================================================================


class ExtractorRegistry:
    """
    Named extractor instances.

    An explicit value: create one where extractors are composed and pass it
    along.

    Usage:
        registry = ExtractorRegistry()
        registry.register(RegexExtractor())
        registry.register(LLMExtractor(create_client("ollama")))
        hybrid = EnsembleExtractor([registry.get("regex"), registry.get("llm")])
    """

    def __init__(self, extractors: Iterable[BaseExtractor] = ()):
        self._extractors: Dict[str, BaseExtractor] = {}
        for extractor in extractors:
            self.register(extractor)

    def register(self, extractor: BaseExtractor, name: str | None = None) -> BaseExtractor:
        """Register under *name* (default: extractor.name). Raises ConfigurationError on duplicates."""
        name = name or extractor.name
        if not name or name == "base":
            raise ConfigurationError(
                f"Extractor {extractor.__class__.__name__} must have a unique name"
            )
        if name in self._extractors:
            raise ConfigurationError(
                f"Extractor name {name!r} already registered by "
                f"{self._extractors[name].__class__.__name__}"
            )
        self._extractors[name] = extractor
        return extractor

    def get(self, name: str) -> BaseExtractor:
        if name not in self._extractors:
            raise KeyError(f"Unknown extractor: {name!r}. Available: {self.names()}")
        return self._extractors[name]

    def unregister(self, name: str) -> BaseExtractor:
        if name not in self._extractors:
            raise KeyError(f"Unknown extractor: {name!r}. Available: {self.names()}")
        return self._extractors.pop(name)

    def names(self) -> List[str]:
        return list(self._extractors)

    def by_method(self, method: ExtractionMethod | str) -> List[BaseExtractor]:
        method = ExtractionMethod(method)
        return [e for e in self._extractors.values() if e.method == method]

    def __len__(self) -> int:
        return len(self._extractors)

    def __contains__(self, name: object) -> bool:
        return name in self._extractors

    def __iter__(self) -> Iterator[BaseExtractor]:
        return iter(self._extractors.values())
