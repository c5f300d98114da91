"""
Similarity Comparator for the statescope explorer.

This module provides the SimilarityComparator class which decides whether
two observations represent the same state of the target. Exact fingerprint
equality short-circuits; otherwise the decision combines a visual score,
supplied by an optional external diff capability, with a structural score
built from the action space, the viewport and the persisted context.

The comparator never raises on bad input. A failing visual diff yields a
visual similarity of 0.0 and a ``degraded`` comparison.
"""

from __future__ import annotations

import math
from typing import Iterable, List, Optional, Set

from statescope.explorer.models import (
    Comparison,
    Difference,
    DifferenceCategory,
    DifferenceSeverity,
    Observation,
)
from statescope.explorer.protocols import VisualDiff
from statescope.observability.logging import get_logger

logger = get_logger("statescope.comparator")

# Weights of the combined structural score
ACTION_WEIGHT = 0.7
VIEWPORT_WEIGHT = 0.2
PERSISTED_WEIGHT = 0.1

# Viewport score when the scroll position differs
SCROLL_MISMATCH_SCORE = 0.8

# Below this similarity a difference is critical
CRITICAL_SIMILARITY = 0.5

# Action-count delta above which an interaction difference is major
MAJOR_ACTION_DELTA = 5


def jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    """Jaccard similarity of two collections; 1.0 when both are empty."""
    set_a: Set[str] = set(a)
    set_b: Set[str] = set(b)
    union = set_a | set_b
    if not union:
        return 1.0
    return len(set_a & set_b) / len(union)


def _severity_for(similarity: float) -> DifferenceSeverity:
    if similarity < CRITICAL_SIMILARITY:
        return DifferenceSeverity.CRITICAL
    return DifferenceSeverity.MAJOR


class SimilarityComparator:
    """
    Decides identical/different for pairs of observations.

    Example:
        comparator = SimilarityComparator(visual_diff=my_diff)
        result = comparator.compare(before, after)
        if not result.identical:
            for diff in result.differences:
                print(diff.category.value, diff.description)

    Attributes:
        enable_visual_diff: Use the visual diff capability when available
        visual_diff: Optional external visual similarity capability
        visual_threshold: Minimum visual similarity for identical states
        structural_threshold: Minimum combined structural similarity
    """

    def __init__(
        self,
        enable_visual_diff: bool = True,
        visual_diff: Optional[VisualDiff] = None,
        visual_threshold: float = 0.95,
        structural_threshold: float = 0.90,
    ) -> None:
        self.enable_visual_diff = enable_visual_diff
        self.visual_diff = visual_diff
        self.visual_threshold = visual_threshold
        self.structural_threshold = structural_threshold

    def compare(self, prior: Observation, current: Observation) -> Comparison:
        """
        Compare two observations.

        Args:
            prior: Observation of the state the action was taken from
            current: Observation captured after the action

        Returns:
            Comparison with the similarity breakdown and differences
        """
        if (
            prior.visual_fingerprint == current.visual_fingerprint
            and prior.structural_fingerprint == current.structural_fingerprint
        ):
            return Comparison(
                visual_similarity=1.0,
                structural_similarity=1.0,
                identical=True,
            )

        differences: List[Difference] = []

        visual, degraded = self._visual_similarity(prior, current)
        if visual < self.visual_threshold:
            differences.append(
                Difference(
                    category=DifferenceCategory.VISUAL,
                    description=f"Visual similarity {visual * 100:.1f}% below threshold",
                    severity=_severity_for(visual),
                )
            )

        action_sim = self.action_similarity(prior, current)
        viewport_sim = 1.0 if prior.viewport.same_scroll(current.viewport) else SCROLL_MISMATCH_SCORE
        persisted_sim = jaccard(prior.persisted_context.keys(), current.persisted_context.keys())
        structural = math.fsum(
            (
                ACTION_WEIGHT * action_sim,
                VIEWPORT_WEIGHT * viewport_sim,
                PERSISTED_WEIGHT * persisted_sim,
            )
        )
        # Weighted float sums drift around 1.0; full agreement must score exactly 1.0
        structural = min(1.0, round(structural, 10))

        if structural < self.structural_threshold:
            differences.append(
                Difference(
                    category=DifferenceCategory.STRUCTURAL,
                    description=f"Structural similarity {structural * 100:.1f}% below threshold",
                    severity=_severity_for(structural),
                )
            )

        differences.extend(self._content_differences(prior, current))

        identical = (
            visual >= self.visual_threshold
            and structural >= self.structural_threshold
            and not differences
        )

        return Comparison(
            visual_similarity=visual,
            structural_similarity=structural,
            identical=identical,
            differences=differences,
            action_similarity=action_sim,
            viewport_similarity=viewport_sim,
            persisted_similarity=persisted_sim,
            degraded=degraded,
        )

    def is_same_state(self, prior: Observation, current: Observation) -> bool:
        return self.compare(prior, current).identical

    @staticmethod
    def action_similarity(prior: Observation, current: Observation) -> float:
        """Jaccard similarity of the ``kind:target_ref`` identity sets."""
        return jaccard(
            (a.identity for a in prior.actions),
            (a.identity for a in current.actions),
        )

    def _visual_similarity(self, prior: Observation, current: Observation) -> tuple[float, bool]:
        """Return (similarity, degraded)."""
        use_diff = (
            self.enable_visual_diff
            and self.visual_diff is not None
            and prior.has_visual_data
            and current.has_visual_data
        )
        if not use_diff:
            same = prior.visual_fingerprint == current.visual_fingerprint
            return (1.0 if same else 0.0), False

        try:
            score = float(
                self.visual_diff.similarity(prior.visual_fingerprint, current.visual_fingerprint)
            )
        except Exception as e:
            logger.warning(
                "Visual diff failed, treating observations as visually different",
                error=str(e),
                error_type=type(e).__name__,
            )
            return 0.0, True

        if not 0.0 <= score <= 1.0:
            logger.warning("Visual diff returned out-of-range similarity", similarity=score)
            return 0.0, True
        return score, False

    @staticmethod
    def _content_differences(prior: Observation, current: Observation) -> List[Difference]:
        differences: List[Difference] = []

        if prior.location != current.location:
            differences.append(
                Difference(
                    category=DifferenceCategory.CONTENT,
                    description=f"Location changed from {prior.location} to {current.location}",
                    severity=DifferenceSeverity.MAJOR,
                )
            )

        if prior.title != current.title:
            differences.append(
                Difference(
                    category=DifferenceCategory.CONTENT,
                    description=f'Title changed from "{prior.title}" to "{current.title}"',
                    severity=DifferenceSeverity.MINOR,
                )
            )

        delta = abs(prior.action_count - current.action_count)
        if delta > 0:
            differences.append(
                Difference(
                    category=DifferenceCategory.INTERACTION,
                    description=f"Action count changed by {delta}",
                    severity=(
                        DifferenceSeverity.MAJOR
                        if delta > MAJOR_ACTION_DELTA
                        else DifferenceSeverity.MINOR
                    ),
                )
            )

        return differences
