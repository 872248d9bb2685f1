"""
Power Presets
C-rate based target power for the constant-power energy window
"""
from enum import Enum
from typing import Dict, Optional

from .energy import NOMINAL_VOLTAGE_V


class PowerPreset(str, Enum):
    """Standardised discharge rates"""
    LIGHT = "0.1C"   # reading, browsing
    MEDIUM = "0.2C"  # office work
    HEAVY = "0.3C"   # video, builds

    @property
    def c_rate(self) -> float:
        return {"0.1C": 0.1, "0.2C": 0.2, "0.3C": 0.3}[self.value]


MIN_TARGET_W = 1.0
MAX_TARGET_W = 50.0
FALLBACK_TARGET_W = 5.0


def target_power(
    preset: PowerPreset,
    design_capacity_mah: Optional[int],
    nominal_voltage: float = NOMINAL_VOLTAGE_V
) -> float:
    """Target CP power: C-rate x design energy, clamped to 1-50 W"""
    if not design_capacity_mah or design_capacity_mah <= 0:
        return FALLBACK_TARGET_W
    energy_wh = design_capacity_mah * nominal_voltage / 1000.0
    return max(MIN_TARGET_W, min(MAX_TARGET_W, preset.c_rate * energy_wh))


def all_target_powers(design_capacity_mah: Optional[int]) -> Dict[PowerPreset, float]:
    return {preset: target_power(preset, design_capacity_mah) for preset in PowerPreset}


def suggest_preset(current_power_w: float, design_capacity_mah: Optional[int]) -> Optional[PowerPreset]:
    """Preset whose target power is closest to the current draw"""
    if current_power_w <= 0.5:
        return None
    powers = all_target_powers(design_capacity_mah)
    return min(powers, key=lambda preset: abs(current_power_w - powers[preset]))


def equivalent_c_rate(
    power_w: float,
    design_capacity_mah: Optional[int],
    nominal_voltage: float = NOMINAL_VOLTAGE_V
) -> float:
    """C-rate equivalent of an arbitrary power draw"""
    if not design_capacity_mah or power_w <= 0:
        return 0.0
    return power_w / (design_capacity_mah * nominal_voltage / 1000.0)
