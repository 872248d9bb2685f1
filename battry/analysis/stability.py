"""
Discharge Stability
Micro-drop detection over sliding time windows
"""
from dataclasses import dataclass
from typing import Sequence

from ..models import Reading

MICRO_DROP_PERCENT = 2
MICRO_DROP_WINDOW_S = 120.0
LOW_SOC_BAND = 20


@dataclass
class MicroDropStats:
    """Micro-drop counts and per-hour rates, split at 20% SOC"""
    total_count: int = 0
    count_above_20: int = 0
    count_below_20: int = 0
    total_rate_per_hour: float = 0.0
    rate_above_20_per_hour: float = 0.0
    rate_below_20_per_hour: float = 0.0


def micro_drop_stats(
    samples: Sequence[Reading],
    threshold_pct: int = MICRO_DROP_PERCENT,
    window_s: float = MICRO_DROP_WINDOW_S
) -> MicroDropStats:
    """
    Count sudden SOC drops while discharging.

    A window opens at each non-charging sample; the first later
    non-charging sample within window_s that is threshold_pct or more
    below it closes one event, and scanning resumes from that sample.
    Events are attributed to the SOC band the window started in and
    normalised by the non-charging time spent in that band.
    """
    if len(samples) < 2:
        return MicroDropStats()

    hours_above = 0.0
    hours_below = 0.0
    for prev, curr in zip(samples, samples[1:]):
        dt_h = (curr.timestamp - prev.timestamp).total_seconds() / 3600.0
        if dt_h <= 0 or prev.is_charging or curr.is_charging:
            continue
        if prev.percentage >= LOW_SOC_BAND:
            hours_above += dt_h
        else:
            hours_below += dt_h

    total = above = below = 0
    i = 0
    while i < len(samples):
        start = samples[i]
        if start.is_charging:
            i += 1
            continue

        found_at = None
        for j in range(i + 1, len(samples)):
            if (samples[j].timestamp - start.timestamp).total_seconds() > window_s:
                break
            if not samples[j].is_charging and start.percentage - samples[j].percentage >= threshold_pct:
                found_at = j
                break

        if found_at is None:
            i += 1
            continue

        total += 1
        if start.percentage >= LOW_SOC_BAND:
            above += 1
        else:
            below += 1
        i = found_at

    total_hours = max(1e-6, hours_above + hours_below)
    return MicroDropStats(
        total_count=total,
        count_above_20=above,
        count_below_20=below,
        total_rate_per_hour=total / total_hours,
        rate_above_20_per_hour=above / hours_above if hours_above > 0 else 0.0,
        rate_below_20_per_hour=below / hours_below if hours_below > 0 else 0.0
    )


def unstable_under_load(
    samples: Sequence[Reading],
    threshold_pct: int = MICRO_DROP_PERCENT,
    window_s: float = MICRO_DROP_WINDOW_S,
    soc_min: int = LOW_SOC_BAND
) -> bool:
    """True if any qualifying drop starts at or above soc_min"""
    for i, start in enumerate(samples):
        if start.is_charging or start.percentage < soc_min:
            continue
        for later in samples[i + 1:]:
            if (later.timestamp - start.timestamp).total_seconds() > window_s:
                break
            if not later.is_charging and start.percentage - later.percentage >= threshold_pct:
                return True
    return False


def stability_score(micro_drops: int, samples: Sequence[Reading]) -> float:
    """100 minus 25 per drop-per-hour; durations under an hour count as one hour"""
    if not samples:
        return 100.0
    duration_h = max(1.0, (samples[-1].timestamp - samples[0].timestamp).total_seconds() / 3600.0)
    return max(0.0, min(100.0, 100.0 - micro_drops / duration_h * 25.0))
