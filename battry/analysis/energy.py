"""
Energy Calculator
Delivered-energy integration and energy-based state of health
"""
from dataclasses import dataclass
from typing import Optional, Sequence

from ..models import Reading

NOMINAL_VOLTAGE_V = 11.1


@dataclass
class EnergyAnalysis:
    """Energy delivered over one window of readings"""
    energy_delivered_wh: float
    soh_energy: float       # %
    average_power_w: float
    duration_hours: float


def integrate_energy_wh(samples: Sequence[Reading]) -> float:
    """Trapezoidal V·I integration, returned as absolute Wh"""
    if len(samples) < 2:
        return 0.0

    joules = 0.0
    for prev, curr in zip(samples, samples[1:]):
        dt = (curr.timestamp - prev.timestamp).total_seconds()
        if dt <= 0:
            continue
        p_prev = prev.voltage * prev.current / 1000.0
        p_curr = curr.voltage * curr.current / 1000.0
        joules += (p_prev + p_curr) / 2.0 * dt

    # Discharge current is negative, so the raw integral is too
    return abs(joules) / 3600.0


def design_energy_wh(design_capacity_mah: Optional[int], voltage: float = NOMINAL_VOLTAGE_V) -> float:
    """Nameplate energy from design capacity and a (nominal or measured) voltage"""
    if not design_capacity_mah:
        return 0.0
    return design_capacity_mah * voltage / 1000.0


def soh_from_energy(energy_wh: float, soc_span: float, design_wh: float) -> float:
    """
    Scale energy measured over a partial SOC span to a full charge and
    compare with design energy. Clamped to [0, 100], 100 when design
    energy is unknown.
    """
    if design_wh <= 0:
        return 100.0
    span = max(1.0, soc_span)
    estimated_full_wh = energy_wh * (100.0 / span)
    return max(0.0, min(100.0, estimated_full_wh / design_wh * 100.0))


def analyze_energy(samples: Sequence[Reading], design_wh: Optional[float] = None) -> Optional[EnergyAnalysis]:
    """Energy, SOH-by-energy and average power for a contiguous window"""
    if len(samples) < 2:
        return None

    first, last = samples[0], samples[-1]
    energy = integrate_energy_wh(samples)
    duration_h = (last.timestamp - first.timestamp).total_seconds() / 3600.0
    avg_power = energy / duration_h if duration_h > 0 else 0.0

    soh = 100.0
    soc_change = abs(first.percentage - last.percentage)
    if design_wh and soc_change > 0:
        soh = soh_from_energy(energy, soc_change, design_wh)

    return EnergyAnalysis(
        energy_delivered_wh=energy,
        soh_energy=soh,
        average_power_w=avg_power,
        duration_hours=duration_h
    )
