"""
Battry Configuration Management
Test protocol constants and service settings with environment overrides
"""
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support"""
    
    # Application
    app_name: str = "Battry"
    app_env: str = "development"
    debug: bool = True
    
    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_prefix: str = "/api/v1"
    
    # Storage
    data_dir: Path = Path("./data")
    report_dir: Path = Path("./reports")
    
    # Full calibration (100% -> 5%)
    calibration_end_threshold_percent: int = 5
    calibration_max_resume_gap_s: float = 1800.0
    calibration_recent_results: int = 5
    
    # Quick health test
    quick_baseline_s: float = 150.0
    quick_pulse_s: float = 10.0
    quick_rest_s: float = 25.0
    quick_energy_window_span_pct: int = 30  # 80 -> 50
    quick_min_start_soc: int = 85
    quick_history_limit: int = 50
    power_preset: str = "0.2C"
    
    # Analysis
    dcir_window_s: float = 3.0
    ocv_bin_size_pct: float = 2.0
    
    # Telemetry
    telemetry_queue_size: int = 256
    
    @property
    def quick_history_path(self) -> Path:
        """Quick health test history file"""
        return self.data_dir / "quickhealth_results.json"
    
    @property
    def calibration_state_path(self) -> Path:
        """Calibration session snapshot file"""
        return self.data_dir / "calibration.json"
    
    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
