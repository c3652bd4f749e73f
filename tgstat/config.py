"""Configuration models using Pydantic for validation."""
from datetime import timedelta
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
import os


class GlobalConfig(BaseModel):
    """Global configuration settings."""
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "text"


class InputConfig(BaseModel):
    """Where chat exports and their companion files are found."""
    chat_exports_glob: str = "chat-exports/*/result.json"
    aliases_file: str = "configs/aliases.json"
    expressions_file: str = "configs/expressions.json"


class BackfillConfig(BaseModel):
    """Resampling settings."""
    resolution_s: int = 3600
    metrics_prefix: str = "tg_"

    @field_validator('resolution_s')
    @classmethod
    def validate_resolution(cls, v):
        if v <= 0:
            raise ValueError("resolution_s must be positive")
        return v

    @field_validator('metrics_prefix')
    @classmethod
    def validate_prefix(cls, v):
        # The prefix scopes the delete_series call; an empty one would match everything.
        if not v:
            raise ValueError("metrics_prefix must not be empty")
        return v

    @property
    def resolution(self) -> timedelta:
        return timedelta(seconds=self.resolution_s)


class VictoriaMetricsConfig(BaseModel):
    """VictoriaMetrics import target."""
    url: str = "http://localhost:8428"
    timeout_s: float = 30.0


class Config(BaseModel):
    """Root configuration model."""
    model_config = ConfigDict(populate_by_name=True)

    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    input: InputConfig = Field(default_factory=InputConfig)
    backfill: BackfillConfig = Field(default_factory=BackfillConfig)
    victoriametrics: VictoriaMetricsConfig = Field(default_factory=VictoriaMetricsConfig)


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate configuration from a YAML file, or use defaults."""
    import yaml

    raw_config = {}
    if config_path is not None:
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r') as f:
            raw_config = yaml.safe_load(f) or {}

        if not isinstance(raw_config, dict):
            raise ValueError(f"Configuration file must contain a mapping: {config_path}")

    # Apply environment variable overrides
    if env_url := os.getenv('VICTORIAMETRICS_URL'):
        raw_config.setdefault('victoriametrics', {})['url'] = env_url

    if env_log_level := os.getenv('LOG_LEVEL'):
        raw_config.setdefault('global', {})['log_level'] = env_log_level

    try:
        return Config(**raw_config)
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")
