"""
Tests for EntityStore and entity merging.

The store must give the same entities for any arrival order of the same
occurrences, since parallel matchers report in no fixed order.
"""

import random

from piiscan.core.pipeline.dedup import EntityStore, merge_entities, merge_occurrences
from piiscan.core.types import EntityKind, ValidationOutcome

from conftest import make_entity, make_occurrence


def snapshot(entities):
    return [e.to_dict() for e in entities]


# =============================================================================
# ENTITY STORE
# =============================================================================

class TestEntityStore:
    """Tests for EntityStore."""

    def test_repeated_value_one_sentence(self):
        """Two occurrences in one sentence give one entity with one context."""
        ctx = "Contact john@example.com or john@example.com again."
        entities = merge_occurrences([
            make_occurrence("john@example.com", start=8, context=ctx),
            make_occurrence("john@example.com", start=28, context=ctx),
        ])
        assert len(entities) == 1
        assert entities[0].occurrence_count == 2
        assert entities[0].contexts == [ctx]

    def test_contexts_ordered_by_offset(self):
        """Contexts follow the text, not the arrival order."""
        store = EntityStore()
        store.add(make_occurrence("a@b.io", start=40, context="Second a@b.io."))
        store.add(make_occurrence("a@b.io", start=5, context="First a@b.io."))
        assert store.entities()[0].contexts == ["First a@b.io.", "Second a@b.io."]

    def test_identity_is_case_sensitive(self):
        """Values differing in case are distinct entities."""
        entities = merge_occurrences([
            make_occurrence("A@b.io"),
            make_occurrence("a@b.io", start=10),
        ])
        assert [e.value for e in entities] == ["A@b.io", "a@b.io"]

    def test_same_value_different_kind(self):
        """Identity includes the kind."""
        entities = merge_occurrences([
            make_occurrence("10001", kind=EntityKind.ZIP_CODE),
            make_occurrence("10001", kind=EntityKind.PHONE),
        ])
        assert len(entities) == 2

    def test_sorted_by_kind_then_value(self):
        """Output is sorted by kind order then value."""
        entities = merge_occurrences([
            make_occurrence("z@z.io"),
            make_occurrence("415-555-0188", kind=EntityKind.PHONE),
            make_occurrence("a@a.io"),
        ])
        assert [e.value for e in entities] == ["a@a.io", "z@z.io", "415-555-0188"]

    def test_attribute_agreement(self):
        """One distinct attribute value survives; empty observations are ignored."""
        entities = merge_occurrences([
            make_occurrence("10115", kind=EntityKind.ZIP_CODE, attributes={"country": "Germany"}),
            make_occurrence("10115", kind=EntityKind.ZIP_CODE, start=20, attributes={"country": ""}),
        ])
        assert entities[0].attributes == {"country": "Germany"}

    def test_attribute_conflict(self):
        """Several locales claiming one value clear the country."""
        entities = merge_occurrences([
            make_occurrence("10115", kind=EntityKind.ZIP_CODE, attributes={"country": "Germany"}),
            make_occurrence("10115", kind=EntityKind.ZIP_CODE, attributes={"country": "Italy"}),
            make_occurrence("10115", kind=EntityKind.ZIP_CODE, attributes={"country": "US"}),
        ])
        assert entities[0].attributes == {"country": ""}
        assert entities[0].occurrence_count == 3

    def test_arrival_order_does_not_matter(self):
        """Shuffled input yields identical output."""
        occurrences = []
        for i, country in enumerate(["Germany", "Italy", "US", "Germany"]):
            occurrences.append(make_occurrence(
                "10115", kind=EntityKind.ZIP_CODE, start=i * 30,
                context=f"Sentence {i % 3} with 10115.", attributes={"country": country},
            ))
        for i in range(5):
            occurrences.append(make_occurrence(
                f"user{i % 2}@x.io", start=200 + i * 20, context=f"Mail {i}.",
            ))
        expected = snapshot(merge_occurrences(occurrences))

        rng = random.Random(7)
        for _ in range(20):
            shuffled = occurrences[:]
            rng.shuffle(shuffled)
            assert snapshot(merge_occurrences(shuffled)) == expected

    def test_entities_are_fresh_objects(self):
        """Each call returns new objects."""
        store = EntityStore()
        store.add(make_occurrence("a@b.io", context="x"))
        first = store.entities()
        first[0].contexts.append("mutated")
        assert store.entities()[0].contexts == ["x"]

    def test_len_and_contains(self):
        """Store size counts identities, not occurrences."""
        store = EntityStore()
        store.add_all([make_occurrence("a@b.io"), make_occurrence("a@b.io", start=9)])
        assert len(store) == 1
        assert "email:a@b.io" in store


# =============================================================================
# MERGE ENTITIES
# =============================================================================

class TestMergeEntities:
    """Tests for merge_entities()."""

    def test_count_is_max_not_sum(self):
        """Sources scanning the same text are not double counted."""
        merged = merge_entities([
            [make_entity("a@b.io", contexts=["c1"], count=2)],
            [make_entity("a@b.io", contexts=["c1"], count=1)],
        ])
        assert merged[0].occurrence_count == 2

    def test_count_raised_to_context_count(self):
        """The count is at least the number of distinct contexts."""
        merged = merge_entities([
            [make_entity("a@b.io", contexts=["c1"], count=1)],
            [make_entity("a@b.io", contexts=["c2"], count=1)],
        ])
        assert merged[0].contexts == ["c1", "c2"]
        assert merged[0].occurrence_count == 2

    def test_keys_filter(self):
        """Only requested identities are emitted."""
        merged = merge_entities(
            [[make_entity("a@b.io"), make_entity("c@d.io")]],
            keys={"email:c@d.io"},
        )
        assert [e.value for e in merged] == ["c@d.io"]

    def test_attribute_conflict_uses_default(self):
        """Conflicting card networks degrade to generic."""
        merged = merge_entities([
            [make_entity("4532015112830366", kind=EntityKind.CREDIT_CARD, attributes={"network": "visa"})],
            [make_entity("4532015112830366", kind=EntityKind.CREDIT_CARD, attributes={"network": "mastercard"})],
        ])
        assert merged[0].attributes == {"network": "generic"}

    def test_agreeing_validations_keep_most_confident(self):
        """Agreeing verdicts keep the highest confidence one."""
        low = make_entity("a@b.io")
        low.validation = ValidationOutcome(True, 0.75, "low", "rules", "builtin-v1")
        high = make_entity("a@b.io")
        high.validation = ValidationOutcome(True, 0.9, "high", "ollama", "qwen2.5:3b")
        merged = merge_entities([[low], [high]])
        assert merged[0].validation.reasoning == "high"

    def test_disagreeing_validations_dropped(self):
        """Conflicting verdicts leave the entity unannotated."""
        yes = make_entity("a@b.io")
        yes.validation = ValidationOutcome(True, 0.9, "", "rules", "builtin-v1")
        no = make_entity("a@b.io")
        no.validation = ValidationOutcome(False, 0.9, "", "ollama", "qwen2.5:3b")
        assert merge_entities([[yes], [no]])[0].validation is None

    def test_inputs_not_modified(self):
        """Merging copies; sources keep their state."""
        source = make_entity("a@b.io", contexts=["c1"])
        merge_entities([[source], [make_entity("a@b.io", contexts=["c2"])]])
        assert source.contexts == ["c1"]
