"""
Tests for the SimilarityComparator.

Covers the exact-fingerprint fast path, the weighted structural score,
visual diff usage and degradation, and the categorized differences.
"""

from __future__ import annotations

import pytest

from statescope.explorer.comparator import SimilarityComparator, jaccard
from statescope.explorer.models import (
    ActionDescriptor,
    ActionKind,
    DifferenceCategory,
    DifferenceSeverity,
    ViewportContext,
)


class FixedDiff:
    """Visual diff returning a fixed score."""

    def __init__(self, score: float) -> None:
        self.score = score
        self.calls = 0

    def similarity(self, fingerprint_a: str, fingerprint_b: str) -> float:
        self.calls += 1
        return self.score


class BrokenDiff:
    def similarity(self, fingerprint_a: str, fingerprint_b: str) -> float:
        raise ValueError("image dimensions differ")


def actions(*refs: str) -> list[ActionDescriptor]:
    return [ActionDescriptor(target_ref=ref, kind=ActionKind.BUTTON) for ref in refs]


def categories(comparison, category):
    return [d for d in comparison.differences if d.category == category]


class TestJaccard:
    def test_identical_sets(self):
        assert jaccard({"a", "b"}, ["b", "a"]) == 1.0

    def test_partial_overlap(self):
        assert jaccard({"a", "b"}, {"b", "c"}) == pytest.approx(1 / 3)

    def test_both_empty_is_one(self):
        assert jaccard([], []) == 1.0

    def test_one_empty_is_zero(self):
        assert jaccard(["a"], []) == 0.0


class TestFastPath:
    """Equal fingerprints short-circuit to identical."""

    def test_equal_fingerprints_are_identical(self, make_observation):
        diff = FixedDiff(0.0)
        comparator = SimilarityComparator(visual_diff=diff)
        prior = make_observation("home")
        current = make_observation("home", title="Changed", actions=actions("#x", "#y"))

        comparison = comparator.compare(prior, current)

        assert comparison.identical
        assert comparison.visual_similarity == 1.0
        assert comparison.structural_similarity == 1.0
        assert comparison.differences == []
        assert diff.calls == 0


class TestStructuralScore:
    """Weighted combination of action, viewport and persisted-context scores."""

    def test_action_jaccard_weight(self, make_observation):
        comparator = SimilarityComparator()
        prior = make_observation("a", actions=actions("#1", "#2"))
        current = make_observation("b", actions=actions("#1"))

        comparison = comparator.compare(prior, current)

        assert comparison.action_similarity == pytest.approx(0.5)
        assert comparison.structural_similarity == pytest.approx(0.7 * 0.5 + 0.2 + 0.1)

    def test_scroll_mismatch_scores_point_eight(self, make_observation):
        comparator = SimilarityComparator()
        prior = make_observation("a", viewport=ViewportContext(scroll_y=0))
        current = make_observation("b", actions=prior.actions, viewport=ViewportContext(scroll_y=400))

        comparison = comparator.compare(prior, current)

        assert comparison.viewport_similarity == pytest.approx(0.8)
        assert comparison.structural_similarity == pytest.approx(0.7 + 0.2 * 0.8 + 0.1)

    def test_persisted_context_keys(self, make_observation):
        comparator = SimilarityComparator()
        prior = make_observation("a", persisted_context={"token": "1"})
        current = make_observation("b", actions=prior.actions, persisted_context={"cart": "2"})

        comparison = comparator.compare(prior, current)

        assert comparison.persisted_similarity == 0.0
        assert comparison.structural_similarity == pytest.approx(0.9)

    def test_persisted_values_are_ignored(self, make_observation):
        comparator = SimilarityComparator()
        prior = make_observation("a", persisted_context={"token": "1"})
        current = make_observation("b", actions=prior.actions, persisted_context={"token": "2"})

        assert comparator.compare(prior, current).persisted_similarity == 1.0

    def test_structural_never_exceeds_one(self, make_observation):
        comparator = SimilarityComparator(visual_diff=FixedDiff(1.0))
        prior = make_observation("a")
        current = make_observation("a", structural_fingerprint="struct:other")

        comparison = comparator.compare(prior, current)

        assert comparison.structural_similarity <= 1.0

    def test_full_agreement_scores_exactly_one(self, make_observation):
        comparator = SimilarityComparator(visual_diff=FixedDiff(1.0), structural_threshold=1.0)
        prior = make_observation("a", persisted_context={"token": "1"})
        current = make_observation("a", structural_fingerprint="struct:other", persisted_context={"token": "2"})

        comparison = comparator.compare(prior, current)

        assert comparison.structural_similarity == 1.0
        assert categories(comparison, DifferenceCategory.STRUCTURAL) == []
        assert comparison.identical


class TestVisualSimilarity:
    """Visual score from the diff capability, or exact equality."""

    def test_uses_visual_diff_when_available(self, make_observation):
        comparator = SimilarityComparator(visual_diff=FixedDiff(0.97))
        prior = make_observation("home")
        current = make_observation("home", visual_fingerprint="visual:home-blink")

        comparison = comparator.compare(prior, current)

        assert comparison.visual_similarity == pytest.approx(0.97)
        assert comparison.identical
        assert not comparison.degraded

    def test_without_diff_uses_exact_equality(self, make_observation):
        comparator = SimilarityComparator()
        prior = make_observation("home")
        current = make_observation("home", visual_fingerprint="visual:home-blink")

        comparison = comparator.compare(prior, current)

        assert comparison.visual_similarity == 0.0
        assert not comparison.identical

    def test_disabled_diff_is_not_called(self, make_observation):
        diff = FixedDiff(0.99)
        comparator = SimilarityComparator(enable_visual_diff=False, visual_diff=diff)
        prior = make_observation("home")
        current = make_observation("home", structural_fingerprint="struct:other")

        comparison = comparator.compare(prior, current)

        assert diff.calls == 0
        assert comparison.visual_similarity == 1.0

    def test_missing_visual_data_falls_back_to_equality(self, make_observation):
        diff = FixedDiff(0.2)
        comparator = SimilarityComparator(visual_diff=diff)
        prior = make_observation("home", visual_fingerprint="")
        current = make_observation("home", visual_fingerprint="", structural_fingerprint="struct:x")

        comparison = comparator.compare(prior, current)

        assert diff.calls == 0
        assert comparison.visual_similarity == 1.0
        assert comparison.identical

    def test_failing_diff_degrades(self, make_observation):
        """A raising diff gives 0.0 visual similarity instead of an error."""
        comparator = SimilarityComparator(visual_diff=BrokenDiff())
        prior = make_observation("home")
        current = make_observation("home", visual_fingerprint="visual:other")

        comparison = comparator.compare(prior, current)

        assert comparison.degraded
        assert comparison.visual_similarity == 0.0
        assert not comparison.identical

    @pytest.mark.parametrize("score", [-0.1, 1.5])
    def test_out_of_range_score_degrades(self, make_observation, score):
        comparator = SimilarityComparator(visual_diff=FixedDiff(score))
        prior = make_observation("home")
        current = make_observation("home", visual_fingerprint="visual:other")

        comparison = comparator.compare(prior, current)

        assert comparison.degraded
        assert comparison.visual_similarity == 0.0


class TestDifferences:
    """Categorized differences and severities."""

    def test_low_visual_similarity_is_critical(self, make_observation):
        comparator = SimilarityComparator(visual_diff=FixedDiff(0.1))
        comparison = comparator.compare(
            make_observation("home"), make_observation("home", visual_fingerprint="v2")
        )
        visual = categories(comparison, DifferenceCategory.VISUAL)
        assert len(visual) == 1
        assert visual[0].severity == DifferenceSeverity.CRITICAL

    def test_moderate_visual_similarity_is_major(self, make_observation):
        comparator = SimilarityComparator(visual_diff=FixedDiff(0.7))
        comparison = comparator.compare(
            make_observation("home"), make_observation("home", visual_fingerprint="v2")
        )
        assert categories(comparison, DifferenceCategory.VISUAL)[0].severity == DifferenceSeverity.MAJOR

    def test_structural_difference_reported(self, make_observation):
        comparator = SimilarityComparator(visual_diff=FixedDiff(1.0))
        comparison = comparator.compare(
            make_observation("a", actions=actions("#1")),
            make_observation("a", structural_fingerprint="s2", actions=actions("#2")),
        )
        structural = categories(comparison, DifferenceCategory.STRUCTURAL)
        assert len(structural) == 1
        assert structural[0].severity == DifferenceSeverity.CRITICAL
        assert not comparison.identical

    def test_location_and_title_changes(self, make_observation):
        comparator = SimilarityComparator(visual_diff=FixedDiff(1.0))
        prior = make_observation("home")
        current = make_observation(
            "home",
            structural_fingerprint="s2",
            location="https://app.test/elsewhere",
            title="Elsewhere",
        )

        comparison = comparator.compare(prior, current)

        content = categories(comparison, DifferenceCategory.CONTENT)
        severities = sorted(d.severity.value for d in content)
        assert severities == ["major", "minor"]
        # Similarities pass, but content differences still make them distinct
        assert comparison.visual_similarity == 1.0
        assert comparison.structural_similarity == 1.0
        assert not comparison.identical

    @pytest.mark.parametrize(
        "size,severity",
        [(3, DifferenceSeverity.MINOR), (7, DifferenceSeverity.MAJOR)],
    )
    def test_action_count_delta(self, make_observation, size, severity):
        comparator = SimilarityComparator(visual_diff=FixedDiff(1.0))
        prior = make_observation("home", actions=[], action_space_size=1)
        current = make_observation(
            "home", structural_fingerprint="s2", actions=[], action_space_size=size
        )

        comparison = comparator.compare(prior, current)

        interaction = categories(comparison, DifferenceCategory.INTERACTION)
        assert len(interaction) == 1
        assert interaction[0].severity == severity

    def test_is_same_state(self, make_observation):
        comparator = SimilarityComparator(visual_diff=FixedDiff(0.99))
        prior = make_observation("home")
        assert comparator.is_same_state(prior, make_observation("home", visual_fingerprint="v2"))
        assert not comparator.is_same_state(prior, make_observation("other"))

    def test_thresholds_are_configurable(self, make_observation):
        comparator = SimilarityComparator(visual_diff=FixedDiff(0.8), visual_threshold=0.75)
        prior = make_observation("home")
        assert comparator.is_same_state(prior, make_observation("home", visual_fingerprint="v2"))
