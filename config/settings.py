"""Application settings loaded from environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Depreciation
    default_salvage_rate: float = 0.10  # fraction of purchase price
    declining_balance_rate: float = 2.0  # 2 = double-declining

    # TCO assumptions
    electricity_cost_per_kwh: float = 0.12
    annual_maintenance_percent: float = 0.10
    avg_support_hours_per_year: float = 2
    support_cost_per_hour: float = 75
    tco_years_to_calculate: int = 5

    # License optimization policy
    downgrade_headroom: float = 0.20  # spare seats kept on a downgrade
    downgrade_savings_share: float = 0.80
    consolidation_savings_rate: float = 0.15  # heuristic, not a guarantee
    reclaim_seat_threshold: int = 5
    harvest_threshold: int = 3
    inactivity_threshold_days: int = 60
    expiry_warning_days: int = 90
    expiry_urgent_days: int = 30


settings = Settings()
