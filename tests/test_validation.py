"""
Tests for the validation layer: retries, backoff, confidence gating,
timeouts and cancellation.
"""

import threading

import pytest

from piiscan.core.cancellation import CancellationToken
from piiscan.core.pipeline import ValidationConfig, ValidationLayer, summarize, validation_context
from piiscan.core.scoring.base import BaseScorer, ScoreResult
from piiscan.core.types import EntityKind
from piiscan.exceptions import ExtractionCancelledError, ScoringError

from conftest import FixedScorer, ScriptedScorer, make_entity


NO_WAIT = ValidationConfig(max_retries=2, min_confidence=0.7, backoff_seconds=0)


class BlockingScorer(BaseScorer):
    """Scorer that blocks until released."""

    provider_id = "blocking"
    model_id = "v0"

    def __init__(self):
        self.release = threading.Event()

    def score(self, kind, value, context):
        self.release.wait(5.0)
        return ScoreResult(True, 0.9)


# =============================================================================
# CONTEXT SELECTION
# =============================================================================

class TestValidationContext:
    """Tests for validation_context()."""

    def test_first_recorded_context(self):
        """The first recorded context is used."""
        entity = make_entity("a@b.io", contexts=["One a@b.io.", "Two a@b.io."])
        assert validation_context(entity, "ignored") == "One a@b.io."

    def test_window_around_first_occurrence(self):
        """Without contexts, a window around the value is cut from the text."""
        text = "x" * 300 + "a@b.io" + "y" * 300
        entity = make_entity("a@b.io", contexts=[])
        window = validation_context(entity, text, window=10)
        assert window == "x" * 10 + "a@b.io" + "y" * 10

    def test_value_not_in_text(self):
        """The full text is used when the value cannot be located."""
        entity = make_entity("a@b.io", contexts=[])
        assert validation_context(entity, "nothing here") == "nothing here"


# =============================================================================
# VALIDATION LAYER
# =============================================================================

class TestValidationLayer:
    """Tests for ValidationLayer.validate()."""

    def test_retry_then_success(self):
        """Two transient failures, then an accepted result within retries."""
        scorer = ScriptedScorer([
            RuntimeError("transient"),
            RuntimeError("transient"),
            ScoreResult(True, 0.9, "looks real"),
        ])
        entity = make_entity("415-555-0188", kind=EntityKind.PHONE)

        summary = ValidationLayer(NO_WAIT).validate([entity], "text", scorer)

        assert len(scorer.calls) == 3
        assert entity.validation is not None
        assert entity.validation.accepted is True
        assert entity.validation.confidence == 0.9
        assert entity.validation.provider_id == "scripted"
        assert summary.total == 1 and summary.accepted == 1

    def test_retries_exhausted(self):
        """Failing every attempt leaves the entity unannotated."""
        scorer = ScriptedScorer([ScoringError("down", provider="scripted")])
        entity = make_entity("a@b.io")

        summary = ValidationLayer(NO_WAIT).validate([entity], "text", scorer)

        assert len(scorer.calls) == 3
        assert entity.validation is None
        assert summary.total == 0
        assert summary.not_validated == 1

    def test_below_threshold_not_attached(self):
        """Low-confidence verdicts are dropped, accepted or not."""
        scorer = FixedScorer({
            "a@b.io": ScoreResult(True, 0.69),
            "c@d.io": ScoreResult(False, 0.5),
            "e@f.io": ScoreResult(False, 0.7),
        })
        entities = [make_entity("a@b.io"), make_entity("c@d.io"), make_entity("e@f.io")]

        summary = ValidationLayer(NO_WAIT).validate(entities, "text", scorer)

        assert [e.validation is not None for e in entities] == [False, False, True]
        assert entities[2].validation.accepted is False
        assert summary.rejected == 1
        assert summary.not_validated == 2

    def test_per_call_config_overrides(self):
        """A config passed to validate() wins over the layer default."""
        scorer = FixedScorer({}, default=ScoreResult(True, 0.75))
        entity = make_entity("a@b.io")
        layer = ValidationLayer(NO_WAIT)
        layer.validate([entity], "text", scorer, config=ValidationConfig(min_confidence=0.8))
        assert entity.validation is None

    def test_unavailable_scorer_skipped(self):
        """An unavailable scorer is never called."""
        scorer = ScriptedScorer([ScoreResult(True, 0.9)], available=False)
        entity = make_entity("a@b.io")
        summary = ValidationLayer(NO_WAIT).validate([entity], "text", scorer)
        assert scorer.calls == []
        assert summary.not_validated == 1

    def test_scorer_receives_context(self):
        """Kind, value and context reach the scorer."""
        scorer = ScriptedScorer([ScoreResult(True, 0.9)])
        entity = make_entity("a@b.io", contexts=["Mail a@b.io now."])
        ValidationLayer(NO_WAIT).validate([entity], "text", scorer)
        assert scorer.calls == [(EntityKind.EMAIL, "a@b.io", "Mail a@b.io now.")]

    def test_linear_backoff(self):
        """Delays grow by backoff_seconds per attempt."""
        delays = []
        scorer = ScriptedScorer([RuntimeError("x")])
        config = ValidationConfig(max_retries=3, backoff_seconds=0.5)
        ValidationLayer(config, sleep=delays.append).validate([make_entity("a@b.io")], "t", scorer)
        assert delays == [0.5, 1.0, 1.5]

    def test_timeout_counts_as_failure(self):
        """A call exceeding the timeout is abandoned and retried."""
        scorer = BlockingScorer()
        entity = make_entity("a@b.io")
        config = ValidationConfig(timeout=0.05, max_retries=0, backoff_seconds=0)
        try:
            summary = ValidationLayer(config).validate([entity], "text", scorer)
        finally:
            scorer.release.set()
        assert entity.validation is None
        assert summary.not_validated == 1

    def test_cancelled_before_start(self):
        """A cancelled token raises before any call."""
        token = CancellationToken()
        token.cancel()
        scorer = ScriptedScorer([ScoreResult(True, 0.9)])
        with pytest.raises(ExtractionCancelledError):
            ValidationLayer(NO_WAIT).validate([make_entity("a@b.io")], "t", scorer, cancel=token)
        assert scorer.calls == []

    def test_cancelled_while_waiting(self):
        """Cancelling during a blocked call interrupts it."""
        scorer = BlockingScorer()
        token = CancellationToken()
        timer = threading.Timer(0.1, token.cancel)
        timer.start()
        try:
            with pytest.raises(ExtractionCancelledError):
                ValidationLayer(NO_WAIT).validate([make_entity("a@b.io")], "t", scorer, cancel=token)
        finally:
            timer.cancel()
            scorer.release.set()

    def test_empty_entities(self):
        """Nothing to validate yields an empty summary."""
        summary = ValidationLayer().validate([], "t", ScriptedScorer([]))
        assert summary.total == 0
        assert summary.not_validated == 0


class TestSummarize:
    """Tests for summarize()."""

    def test_average_confidence(self):
        """Average covers attached outcomes only."""
        a, b, c = make_entity("a@b.io"), make_entity("c@d.io"), make_entity("e@f.io")
        scorer = FixedScorer({
            "a@b.io": ScoreResult(True, 0.8),
            "c@d.io": ScoreResult(False, 1.0),
            "e@f.io": ScoreResult(True, 0.1),
        })
        ValidationLayer(NO_WAIT).validate([a, b, c], "t", scorer)
        summary = summarize([a, b, c], scorer)
        assert summary.total == 2
        assert summary.avg_confidence == pytest.approx(0.9)
        assert summary.provider_id == "fixed"
        assert summary.model_id == "table"
