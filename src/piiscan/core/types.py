"""
Core data types for the piiscan extraction engine.

This module defines the fundamental types used throughout the system:
- EntityKind: closed set of sensitive-data categories
- Occurrence: one raw pattern match, pre-deduplication
- Entity: one canonical, deduplicated sensitive value
- ValidationOutcome / ValidationSummary: scorer judgements and run statistics
- AggregateResult: the immutable result of one extract() call

Kind-specific behavior (which attributes a kind carries, which attributes
degrade to a default on conflict) lives in tables keyed by EntityKind so
that every kind is covered explicitly.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

__all__ = [
    # Enums
    "EntityKind",
    # Attribute tables
    "ATTR_COUNTRY",
    "ATTR_NETWORK",
    "ATTR_VERSION",
    "KIND_ATTRIBUTES",
    "SUBTYPE_DEFAULTS",
    "conflict_value",
    "resolve_attribute",
    "kind_rank",
    # Data classes
    "Occurrence",
    "Entity",
    "ValidationOutcome",
    "ValidationSummary",
    "AggregateResult",
]

logger = logging.getLogger(__name__)


class EntityKind(str, Enum):
    """Category of sensitive data. Definition order is the result sort order."""
    EMAIL = "email"
    PHONE = "phone"
    SSN = "ssn"
    ZIP_CODE = "zip_code"
    PO_BOX = "po_box"
    STREET_ADDRESS = "street_address"
    CREDIT_CARD = "credit_card"
    IP_ADDRESS = "ip_address"
    BTC_ADDRESS = "btc_address"
    IBAN = "iban"

    @classmethod
    def from_value(cls, value: "str | EntityKind") -> "EntityKind":
        """Parse a kind name, accepting legacy aliases. Raises ValueError if unknown."""
        if isinstance(value, EntityKind):
            return value
        key = str(value).strip().lower().replace("-", "_")
        key = _KIND_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise ValueError(
                f"Unknown entity kind: {value!r}. "
                f"Valid kinds: {', '.join(k.value for k in cls)}"
            ) from None

    def __str__(self) -> str:
        return self.value


_KIND_ALIASES = {
    "zipcode": "zip_code",
    "postal_code": "zip_code",
    "pobox": "po_box",
    "address": "street_address",
    "creditcard": "credit_card",
    "ip": "ip_address",
    "bitcoin": "btc_address",
    "btc": "btc_address",
}

_KIND_RANK = {kind: i for i, kind in enumerate(EntityKind)}


def kind_rank(kind: EntityKind) -> int:
    """Stable sort position of a kind."""
    return _KIND_RANK[kind]


# =============================================================================
# ATTRIBUTE TABLES
# =============================================================================

ATTR_COUNTRY = "country"
ATTR_NETWORK = "network"
ATTR_VERSION = "version"

# Attributes each kind carries
KIND_ATTRIBUTES: Dict[EntityKind, FrozenSet[str]] = {
    EntityKind.EMAIL: frozenset(),
    EntityKind.PHONE: frozenset({ATTR_COUNTRY}),
    EntityKind.SSN: frozenset({ATTR_COUNTRY}),
    EntityKind.ZIP_CODE: frozenset({ATTR_COUNTRY}),
    EntityKind.PO_BOX: frozenset({ATTR_COUNTRY}),
    EntityKind.STREET_ADDRESS: frozenset({ATTR_COUNTRY}),
    EntityKind.CREDIT_CARD: frozenset({ATTR_NETWORK}),
    EntityKind.IP_ADDRESS: frozenset({ATTR_VERSION}),
    EntityKind.BTC_ADDRESS: frozenset(),
    EntityKind.IBAN: frozenset({ATTR_COUNTRY}),
}

# Subtype fields must always hold a classification; on conflict they
# degrade to this value instead of being cleared.
SUBTYPE_DEFAULTS: Dict[EntityKind, Dict[str, str]] = {
    EntityKind.EMAIL: {},
    EntityKind.PHONE: {},
    EntityKind.SSN: {},
    EntityKind.ZIP_CODE: {},
    EntityKind.PO_BOX: {},
    EntityKind.STREET_ADDRESS: {},
    EntityKind.CREDIT_CARD: {ATTR_NETWORK: "generic"},
    EntityKind.IP_ADDRESS: {},
    EntityKind.BTC_ADDRESS: {},
    EntityKind.IBAN: {},
}


def conflict_value(kind: EntityKind, attribute: str) -> str:
    """Value an attribute takes when two non-empty observations disagree."""
    return SUBTYPE_DEFAULTS[kind].get(attribute, "")


def resolve_attribute(kind: EntityKind, attribute: str, observed: Iterable[str]) -> str:
    """
    Reduce every value observed for one attribute to its merged value.

    Empty observations carry no information. One distinct non-empty value is
    kept; two or more are a conflict.
    """
    distinct = {v for v in observed if v}
    if not distinct:
        return ""
    if len(distinct) == 1:
        return next(iter(distinct))
    return conflict_value(kind, attribute)


# =============================================================================
# OCCURRENCE / ENTITY
# =============================================================================


@dataclass(frozen=True)
class Occurrence:
    """
    One raw match of a pattern at a specific text location.

    Attributes:
        kind: Entity kind of the matcher that produced it
        raw_value: The matched text, exactly as it appears
        span_start: Start character position (0-indexed)
        span_end: End character position (exclusive)
        context: Surrounding sentence or word window
        attributes: Locale-derived tags (country, network, version)
    """
    kind: EntityKind
    raw_value: str
    span_start: int
    span_end: int
    context: str
    attributes: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.span_start < 0:
            raise ValueError(f"Invalid occurrence: start={self.span_start} cannot be negative")
        if self.span_start >= self.span_end:
            raise ValueError(
                f"Invalid occurrence: start={self.span_start} >= end={self.span_end}"
            )

    @property
    def key(self) -> str:
        return f"{self.kind.value}:{self.raw_value}"

    def __repr__(self) -> str:
        """Safe repr that doesn't expose the matched value."""
        return (
            f"Occurrence(kind={self.kind.value!r}, span=({self.span_start}, {self.span_end}), "
            f"attributes={dict(self.attributes)!r})"
        )


@dataclass(frozen=True)
class ValidationOutcome:
    """A scorer judgement that cleared the confidence threshold."""
    accepted: bool
    confidence: float
    reasoning: str
    provider_id: str
    model_id: str

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Invalid confidence: {self.confidence}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accepted": self.accepted,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "providerId": self.provider_id,
            "modelId": self.model_id,
        }


@dataclass
class Entity:
    """
    A deduplicated, canonical record of one distinct sensitive value.

    Identity is (kind, value), exact and case-sensitive. Entities are only
    written while a result is being built; once they are part of an
    AggregateResult nothing mutates them.
    """
    kind: EntityKind
    value: str
    attributes: Dict[str, str] = field(default_factory=dict)
    contexts: List[str] = field(default_factory=list)
    occurrence_count: int = 1
    validation: Optional[ValidationOutcome] = None

    def __post_init__(self) -> None:
        if isinstance(self.kind, str) and not isinstance(self.kind, EntityKind):
            self.kind = EntityKind.from_value(self.kind)
        if self.occurrence_count < 1:
            raise ValueError(f"Invalid occurrence_count: {self.occurrence_count}")

    @property
    def key(self) -> str:
        return f"{self.kind.value}:{self.value}"

    @property
    def is_validated(self) -> bool:
        return self.validation is not None

    @property
    def is_accepted(self) -> bool:
        return self.validation is not None and self.validation.accepted

    def copy(self) -> "Entity":
        """Independent copy; mutable fields are not shared."""
        return Entity(
            kind=self.kind,
            value=self.value,
            attributes=dict(self.attributes),
            contexts=list(self.contexts),
            occurrence_count=self.occurrence_count,
            validation=self.validation,
        )

    def __repr__(self) -> str:
        """Safe repr that doesn't expose the sensitive value."""
        return (
            f"Entity(kind={self.kind.value!r}, attributes={self.attributes!r}, "
            f"contexts={len(self.contexts)}, occurrence_count={self.occurrence_count}, "
            f"validated={self.is_validated})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "kind": self.kind.value,
            "value": self.value,
            "attributes": dict(self.attributes),
            "contexts": list(self.contexts),
            "occurrenceCount": self.occurrence_count,
            "validation": self.validation.to_dict() if self.validation else None,
        }


# =============================================================================
# RESULTS
# =============================================================================


@dataclass(frozen=True)
class ValidationSummary:
    """Statistics of one validation pass."""
    total: int
    accepted: int
    rejected: int
    not_validated: int
    avg_confidence: float
    provider_id: str
    model_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "accepted": self.accepted,
            "rejected": self.rejected,
            "notValidated": self.not_validated,
            "avgConfidence": self.avg_confidence,
            "providerId": self.provider_id,
            "modelId": self.model_id,
        }


@dataclass(frozen=True)
class AggregateResult:
    """
    Complete, immutable result of one extraction call.

    Attributes:
        entities: Canonical entities, sorted by (kind, value)
        counts_by_kind: Number of distinct entities per kind (kinds with none are absent)
        validation_summary: Present only when validation was requested
        failed_sources: Matchers or extractors whose contribution was skipped
    """
    entities: Tuple[Entity, ...] = ()
    counts_by_kind: Mapping[EntityKind, int] = field(default_factory=dict)
    validation_summary: Optional[ValidationSummary] = None
    failed_sources: Tuple[str, ...] = ()

    @classmethod
    def build(
        cls,
        entities: Iterable[Entity],
        validation_summary: Optional[ValidationSummary] = None,
        failed_sources: Iterable[str] = (),
    ) -> "AggregateResult":
        ordered = tuple(entities)
        counts = Counter(e.kind for e in ordered)
        return cls(
            entities=ordered,
            counts_by_kind={k: counts[k] for k in EntityKind if counts[k]},
            validation_summary=validation_summary,
            failed_sources=tuple(sorted(set(failed_sources))),
        )

    @property
    def is_empty(self) -> bool:
        return not self.entities

    @property
    def is_complete(self) -> bool:
        """False when any matcher or source was skipped after a failure."""
        return not self.failed_sources

    def __len__(self) -> int:
        return len(self.entities)

    def entities_by_kind(self, kind: EntityKind | str) -> List[Entity]:
        kind = EntityKind.from_value(kind)
        return [e for e in self.entities if e.kind == kind]

    def has_kind(self, kind: EntityKind | str) -> bool:
        return EntityKind.from_value(kind) in self.counts_by_kind

    def entities_by_attribute(self, name: str, value: str) -> List[Entity]:
        """Entities whose attribute matches, e.g. ("country", "US")."""
        return [e for e in self.entities if e.attributes.get(name) == value]

    def validated_entities(self) -> List[Entity]:
        return [e for e in self.entities if e.is_validated]

    def accepted_entities(self) -> List[Entity]:
        return [e for e in self.entities if e.is_validated and e.validation.accepted]

    def rejected_entities(self) -> List[Entity]:
        return [e for e in self.entities if e.is_validated and not e.validation.accepted]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "entities": [e.to_dict() for e in self.entities],
            "countsByKind": {k.value: n for k, n in self.counts_by_kind.items()},
            "validationSummary": (
                self.validation_summary.to_dict() if self.validation_summary else None
            ),
            "failedSources": list(self.failed_sources),
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)
