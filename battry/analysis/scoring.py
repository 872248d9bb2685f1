"""
Composite Health Scoring
Weighted 0-100 battery health score and its recommendation tier
"""
from enum import Enum
from typing import Optional

# Weights: energy SOH, DCIR, capacity SOH, stability, temperature
WEIGHT_SOH_ENERGY = 0.40
WEIGHT_DCIR = 0.25
WEIGHT_SOH_CAPACITY = 0.20
WEIGHT_STABILITY = 0.10
WEIGHT_TEMPERATURE = 0.05


class HealthTier(str, Enum):
    """Recommendation tier for a composite score"""
    EXCELLENT = "excellent"  # 85-100
    GOOD = "good"            # 70-84
    FAIR = "fair"            # 50-69
    POOR = "poor"            # <50, replace soon


RECOMMENDATIONS = {
    HealthTier.EXCELLENT: "Battery health is excellent. No action required.",
    HealthTier.GOOD: "Battery health is good. Monitor periodically.",
    HealthTier.FAIR: "Battery health is fair. Consider replacement planning.",
    HealthTier.POOR: "Battery health is poor. Replacement recommended soon.",
}


def dcir_score(dcir_at_50: Optional[float], dcir_at_20: Optional[float]) -> float:
    """
    Resistance sub-score. 100 mΩ at 50% SOC and 200 mΩ at 20% SOC are
    the zero-penalty points; both present are averaged.
    """
    score_50 = max(0.0, 100.0 - (dcir_at_50 - 100.0) / 2.0) if dcir_at_50 is not None else None
    score_20 = max(0.0, 100.0 - (dcir_at_20 - 200.0) / 3.0) if dcir_at_20 is not None else None

    if score_50 is not None and score_20 is not None:
        return (score_50 + score_20) / 2.0
    if score_50 is not None:
        return score_50
    if score_20 is not None:
        return score_20
    return 100.0


def composite_health_score(
    normalized_soh: float,
    soh_capacity: float,
    dcir_at_50: Optional[float],
    dcir_at_20: Optional[float],
    stability_score: float,
    temperature_quality: float
) -> float:
    """
    Combine sub-scores into one 0-100 health score.

    Args:
        normalized_soh: Temperature-normalised SOH by energy (%)
        soh_capacity: Max capacity / design capacity (%)
        dcir_at_50: DCIR at 50% SOC (mΩ), normalised
        dcir_at_20: DCIR at 20% SOC (mΩ)
        stability_score: Micro-drop stability (0-100)
        temperature_quality: Test temperature quality (0-100)

    Returns:
        Composite score clamped to [0, 100]
    """
    score = (
        WEIGHT_SOH_ENERGY * normalized_soh
        + WEIGHT_DCIR * dcir_score(dcir_at_50, dcir_at_20)
        + WEIGHT_SOH_CAPACITY * soh_capacity
        + WEIGHT_STABILITY * stability_score
        + WEIGHT_TEMPERATURE * max(0.0, min(100.0, temperature_quality))
    )
    return max(0.0, min(100.0, score))


def health_tier(score: float) -> HealthTier:
    """Classify a composite score"""
    if score >= 85:
        return HealthTier.EXCELLENT
    elif score >= 70:
        return HealthTier.GOOD
    elif score >= 50:
        return HealthTier.FAIR
    return HealthTier.POOR


def recommendation_for(score: float) -> str:
    """Human-readable recommendation for a composite score"""
    return RECOMMENDATIONS[health_tier(score)]
