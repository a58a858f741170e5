import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

ENV_PREFIX = "SCHEDULER_"


class Settings(BaseModel):
    notification_limit: int = Field(default=50, ge=1)
    toast_ttl_seconds: float = Field(default=5.0, gt=0)
    toast_retry_attempts: int = Field(default=1, ge=0)
    # minutes a shift may sit below capacity before coverage alerts go out
    coverage_threshold_minutes: float = Field(default=10.0, ge=0)
    enforce_capacity: bool = True
    seed_demo_data: bool = False
    log_level: str = "INFO"


def load_settings(env: dict[str, str] | None = None) -> Settings:
    """
    Build Settings from SCHEDULER_* variables. A local .env is loaded
    first when reading the real environment.
    """
    if env is None:
        load_dotenv()
        env = dict(os.environ)
    values = {
        name: env[f"{ENV_PREFIX}{name.upper()}"]
        for name in Settings.model_fields
        if f"{ENV_PREFIX}{name.upper()}" in env
    }
    return Settings.model_validate(values)
