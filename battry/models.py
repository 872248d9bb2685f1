"""
Battry Record Schema
Telemetry samples and the persisted test result records
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

SCHEMA_VERSION = 1


class Reading(BaseModel):
    """One telemetry sample pushed by the power monitor"""
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    percentage: int = Field(..., ge=0, le=100)  # SOC
    is_charging: bool = False
    voltage: float                               # V
    current: float = 0.0                         # mA, negative on discharge
    temperature: float = 25.0                    # °C
    max_capacity: Optional[int] = None           # mAh
    design_capacity: Optional[int] = None        # mAh
    on_battery_power: bool = True

    @property
    def power_w(self) -> float:
        """Absolute power draw in watts"""
        return abs(self.voltage * self.current / 1000.0)


class DCIRPoint(BaseModel):
    """Internal resistance measured across one load pulse"""
    model_config = ConfigDict(frozen=True)

    soc_percent: float
    resistance_milliohm: float
    timestamp: datetime
    quality: float = 100.0  # 0-100


class OCVPoint(BaseModel):
    """Open-circuit voltage averaged over one SOC bin"""
    model_config = ConfigDict(frozen=True)

    soc_percent: float  # bin center
    ocv_voltage: float  # V
    timestamp: datetime


class CalibrationResult(BaseModel):
    """Outcome of one full-discharge calibration"""
    model_config = ConfigDict(frozen=True)

    started_at: datetime
    finished_at: datetime
    start_percent: int
    end_percent: int
    duration_hours: float
    avg_discharge_per_hour: float
    estimated_runtime_hours_from_100_to_0: float
    report_path: Optional[str] = None


class QuickHealthResult(BaseModel):
    """Outcome of one quick health test"""
    model_config = ConfigDict(frozen=True)

    started_at: datetime
    completed_at: datetime
    duration_minutes: float

    # Energy window
    energy_delivered_wh: float
    soh_energy: float
    average_power_w: float
    target_power_w: float
    power_preset: str

    # DCIR
    dcir_points: List[DCIRPoint] = Field(default_factory=list)
    dcir_at_50: Optional[float] = None
    dcir_at_20: Optional[float] = None

    # OCV
    knee_soc: Optional[float] = None
    knee_index: float = 0.0

    # Stability
    micro_drop_count: int = 0
    micro_drop_count_above_20: int = 0
    micro_drop_count_below_20: int = 0
    micro_drop_rate_per_hour: float = 0.0
    micro_drop_rate_above_20_per_hour: float = 0.0
    micro_drop_rate_below_20_per_hour: float = 0.0
    unstable_under_load: bool = False
    stability_score: float = 100.0

    # Temperature
    average_temperature: float
    temperature_quality: float
    normalized_soh: float

    soh_capacity: float = 100.0
    power_control_quality: float = 100.0

    # Composite
    health_score: float
    recommendation: str

    @property
    def is_healthy(self) -> bool:
        return self.health_score >= 70

    @property
    def needs_attention(self) -> bool:
        return 50 <= self.health_score < 70

    @property
    def is_critical(self) -> bool:
        return self.health_score < 50


class VersionedDocument(BaseModel):
    """Base for documents written to disk"""
    model_config = ConfigDict(extra="forbid")

    schema_version: int = SCHEMA_VERSION


class QuickHealthHistory(VersionedDocument):
    """Quick test results, newest first"""
    results: List[QuickHealthResult] = Field(default_factory=list)


class CalibrationSessionRecord(VersionedDocument):
    """Snapshot of a calibration engine for save/restore across restarts"""
    state: str = "idle"
    started_at: Optional[datetime] = None
    start_percent: Optional[int] = None
    result: Optional[CalibrationResult] = None
    last_result: Optional[CalibrationResult] = None
    recent_results: List[CalibrationResult] = Field(default_factory=list)
    samples: List[Reading] = Field(default_factory=list)
    last_sample_at: Optional[datetime] = None
    max_resume_gap_s: float = 1800.0
    auto_reset_due_to_gap: bool = False
