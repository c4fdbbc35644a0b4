"""
Canonicalization of raw occurrences into unique entities.

Identity is (kind, value), exact and case-sensitive. Repeated occurrences
of one identity are merged:
- contexts are kept once each, in order of first appearance in the text
- occurrence_count grows by one per occurrence
- attributes are reconciled: one distinct non-empty value is kept, two or
  more distinct values clear the field ("" or the kind's subtype default)

The store records every distinct value seen per attribute and the lowest
text offset per context instead of folding pairwise, so the merged result
is the same for any arrival order. Parallel extraction relies on that.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set

from ..types import Entity, EntityKind, Occurrence, ValidationOutcome, kind_rank, resolve_attribute

logger = logging.getLogger(__name__)

__all__ = [
    "EntityStore",
    "merge_occurrences",
    "merge_entities",
]


@dataclass
class _Accumulator:
    kind: EntityKind
    value: str
    count: int = 0
    # context -> lowest span start it was seen at
    contexts: Dict[str, int] = field(default_factory=dict)
    observed: Dict[str, Set[str]] = field(default_factory=dict)

    def to_entity(self) -> Entity:
        attributes = {
            name: resolve_attribute(self.kind, name, values)
            for name, values in sorted(self.observed.items())
        }
        ordered = sorted(self.contexts.items(), key=lambda item: (item[1], item[0]))
        return Entity(
            kind=self.kind,
            value=self.value,
            attributes=attributes,
            contexts=[ctx for ctx, _ in ordered],
            occurrence_count=self.count,
        )


class EntityStore:
    """
    Order-independent deduplicator for one extraction run.

    Usage:
        store = EntityStore()
        for occurrence in occurrences:
            store.add(occurrence)
        entities = store.entities()

        # or in one call
        entities = EntityStore().merge(occurrences)
    """

    def __init__(self) -> None:
        self._items: Dict[str, _Accumulator] = {}

    def add(self, occurrence: Occurrence) -> None:
        key = occurrence.key
        acc = self._items.get(key)
        if acc is None:
            acc = _Accumulator(kind=occurrence.kind, value=occurrence.raw_value)
            self._items[key] = acc

        acc.count += 1
        if occurrence.context:
            seen = acc.contexts.get(occurrence.context)
            if seen is None or occurrence.span_start < seen:
                acc.contexts[occurrence.context] = occurrence.span_start
        for name, value in occurrence.attributes.items():
            values = acc.observed.setdefault(name, set())
            if value:
                values.add(value)

    def add_all(self, occurrences: Iterable[Occurrence]) -> None:
        for occurrence in occurrences:
            self.add(occurrence)

    def merge(self, occurrences: Iterable[Occurrence]) -> List[Entity]:
        """Add *occurrences* and return the canonical entity list."""
        self.add_all(occurrences)
        return self.entities()

    def entities(self) -> List[Entity]:
        """Entities sorted by (kind, value); a new list of new objects on each call."""
        ordered = sorted(self._items.values(), key=lambda a: (kind_rank(a.kind), a.value))
        return [acc.to_entity() for acc in ordered]

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return key in self._items


def merge_occurrences(occurrences: Iterable[Occurrence]) -> List[Entity]:
    """Convenience wrapper: dedupe *occurrences* with a fresh store."""
    return EntityStore().merge(occurrences)


def merge_entities(groups: Sequence[Iterable[Entity]], keys: Optional[Set[str]] = None) -> List[Entity]:
    """
    Merge whole entities from several result sets.

    Same identity and attribute rules as EntityStore. Contexts are kept in
    first-seen order across *groups*. The merged count is the largest count
    any source reported, raised to the number of distinct contexts, because
    every source scanned the same text and summing would double count.

    Args:
        groups: Entity collections, one per source
        keys: When given, only identities in this set are emitted

    Returns:
        New Entity objects; inputs are not modified. Validation outcomes are
        kept only when every source that validated the identity agrees.
    """
    merged: Dict[str, _EntityMerge] = {}

    for group in groups:
        for entity in group:
            key = entity.key
            if keys is not None and key not in keys:
                continue
            slot = merged.get(key)
            if slot is None:
                slot = merged[key] = _EntityMerge(kind=entity.kind, value=entity.value)
            slot.absorb(entity)

    return [slot.to_entity() for slot in merged.values()]


@dataclass
class _EntityMerge:
    kind: EntityKind
    value: str
    count: int = 0
    contexts: Dict[str, None] = field(default_factory=dict)
    observed: Dict[str, Set[str]] = field(default_factory=dict)
    validations: List[ValidationOutcome] = field(default_factory=list)

    def absorb(self, entity: Entity) -> None:
        self.count = max(self.count, entity.occurrence_count)
        for ctx in entity.contexts:
            self.contexts.setdefault(ctx, None)
        for name, value in entity.attributes.items():
            values = self.observed.setdefault(name, set())
            if value:
                values.add(value)
        if entity.validation is not None:
            self.validations.append(entity.validation)

    def to_entity(self) -> Entity:
        contexts = list(self.contexts)
        validation = None
        if self.validations and len({v.accepted for v in self.validations}) == 1:
            validation = max(self.validations, key=lambda v: v.confidence)
        return Entity(
            kind=self.kind,
            value=self.value,
            attributes={
                name: resolve_attribute(self.kind, name, values)
                for name, values in sorted(self.observed.items())
            },
            contexts=contexts,
            occurrence_count=max(self.count, len(contexts), 1),
            validation=validation,
        )
