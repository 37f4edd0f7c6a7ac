"""Logging section of the configuration file."""

from typing import Literal, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator


class LoggingConfig(BaseModel):
    """``[logging]`` settings, passed straight to ``setup_logging``."""

    model_config = ConfigDict(extra='forbid')

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level"
    )
    format: Literal["simple", "detailed", "json"] = Field(
        default="simple",
        description="Console format; the log file is always JSON"
    )
    file: Optional[str] = Field(
        default=None,
        description="Optional log file path, ${TEMP} and ~ are expanded"
    )
    trace_io: bool = Field(
        default=False,
        description="At DEBUG, also log every database open and file copy"
    )

    @field_validator('level', 'format', mode='before')
    @classmethod
    def normalize_case(cls, v, info):
        """Accept ``debug``/``Json`` and friends from TOML or the environment."""
        if not isinstance(v, str):
            return v
        return v.upper() if info.field_name == 'level' else v.lower()
