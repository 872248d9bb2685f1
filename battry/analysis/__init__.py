"""
Battry Analysis Module
Signal processing for DCIR, OCV, energy, stability and health scoring
"""
from .dcir import DCIRCalculator, DCIRAnalysis
from .ocv import OCVAnalyzer, OCVAnalysis
from .temperature import TemperatureNormalizer, temperature_quality
from .scoring import composite_health_score, recommendation_for, HealthTier
from .presets import PowerPreset, target_power

__all__ = [
    "DCIRCalculator",
    "DCIRAnalysis",
    "OCVAnalyzer",
    "OCVAnalysis",
    "TemperatureNormalizer",
    "temperature_quality",
    "composite_health_score",
    "recommendation_for",
    "HealthTier",
    "PowerPreset",
    "target_power",
]
