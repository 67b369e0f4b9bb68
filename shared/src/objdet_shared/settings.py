from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Redis
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )

    # Cameras (frames:{camera_id} streams to consume)
    camera_ids: str = Field(default="cam3d")

    # Matching
    min_overlap_percent: float = Field(default=50.0, ge=0.0, le=100.0)
    match_strategy: str = Field(default="greedy", description="'greedy' | 'optimal'")

    # Prediction service
    predict_timeout_s: float = Field(default=1.0, gt=0.0)

    # Clock
    use_sim_time: bool = Field(default=False)
    clock_key: str = Field(default="clock:ns")
    clock_wait_timeout_s: float = Field(default=30.0)

    # Output
    detections_maxlen: int = Field(default=1000)
    display_enabled: bool = Field(default=False)

    # Logging
    log_format: str = Field(default="console")
    log_level: str = Field(default="INFO")

    # Environment
    environment: str = Field(default="development")

    @property
    def camera_id_list(self) -> list[str]:
        return [c.strip() for c in self.camera_ids.split(",") if c.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


# Module-level singleton, import and use directly
settings = Settings()
