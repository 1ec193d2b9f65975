"""Confidence scoring utilities for footprint candidates."""

from __future__ import annotations

from typing import Optional

from roofline.core.config import ResolverPolicy
from roofline.core.models import FootprintValidation, ReferenceMeasurement


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def relative_difference(value: float, reference: Optional[float]) -> Optional[float]:
    """``|value - reference| / reference``, or None without a usable reference."""
    if not reference or reference <= 0:
        return None
    return abs(value - reference) / reference


def area_match_adjustment(diff: Optional[float], policy: ResolverPolicy) -> float:
    """Bonus for a close area match, penalty for a large deviation."""
    if diff is None:
        return 0.0
    if diff <= policy.area_match_tight:
        return policy.area_match_tight_bonus
    if diff <= policy.area_match_loose:
        return policy.area_match_loose_bonus
    if diff > policy.area_deviation_limit:
        return -policy.area_deviation_penalty
    return 0.0


def candidate_score(
    confidence: float,
    validation: FootprintValidation,
    reference: Optional[ReferenceMeasurement],
    policy: ResolverPolicy,
) -> float:
    """Composite score: source confidence adjusted by validation and reference fit."""
    score = confidence
    if not validation.is_valid:
        score -= policy.invalid_penalty
    if not validation.meets_thresholds:
        score -= policy.threshold_penalty
    if reference is not None:
        diff = relative_difference(validation.metrics.area_sqft, reference.area_sqft)
        score += area_match_adjustment(diff, policy)
    if validation.metrics.vertex_count >= policy.vertex_bonus_min:
        score += policy.vertex_bonus
    return score


def combined_confidence(*scores: float) -> float:
    """Combine multiple confidence scores as their geometric mean."""
    if not scores:
        return 0.0
    product = 1.0
    for s in scores:
        product *= max(s, 0.01)
    return product ** (1.0 / len(scores))
