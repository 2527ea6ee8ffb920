from typing import Dict, Any, Literal, Mapping, Optional
import os
from pydantic import BaseModel, ConfigDict, Field

ENV_PREFIX = "DAYLI_"


class Settings(BaseModel):
    """Runtime configuration, read from DAYLI_* environment variables"""
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    # Language model
    model_name: str = "gpt-4o-mini"
    model_provider: Optional[str] = "openai"
    temperature: float = Field(0.1, ge=0.0, le=2.0)
    model_timeout: float = Field(30.0, gt=0, description="Seconds before the understanding call falls back")

    # Response cache
    cache_ttl_seconds: float = Field(300.0, gt=0)
    cache_max_size: int = Field(1000, ge=1)

    # Memory
    ledger_max_size: int = Field(50, ge=1)
    proposal_ttl_minutes: int = Field(10, ge=1)

    # Pipeline
    context_fetch_timeout: float = Field(5.0, gt=0, description="Per-source timeout during context assembly")
    capability_timeout: float = Field(30.0, gt=0, description="Default for capabilities that declare none")
    low_confidence_threshold: float = Field(0.7, ge=0.0, le=1.0)
    default_timezone: str = "America/New_York"

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "json"
    service_name: str = "dayli-agent"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from the environment; unset variables keep their defaults"""

        environ = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        for name in cls.model_fields:
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw
        return cls.model_validate(values)
