from typing import Annotated, List, Tuple, Union

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class RelayConfig(BaseSettings):
    """Process-wide settings, read from the environment once at startup."""

    model_config = SettingsConfigDict(frozen=True, env_ignore_empty=True, extra='ignore')

    host: str = '0.0.0.0'
    port: int = 3000
    # '*' or a comma separated list of origins
    cors_origins: Annotated[Union[str, List[str]], NoDecode] = '*'
    cors_methods: Tuple[str, ...] = ('GET',)
    preflight_status: int = 204
    high_water_mark: int = 10 * 1024 * 1024
    chunk_size: int = 64 * 1024
    upstream_connect_timeout: float = 10.0
    upstream_read_timeout: float = 30.0
    log_level: str = 'INFO'
    trust_proxy: bool = True

    @field_validator('cors_origins', mode='before')
    @classmethod
    def split_origins(cls, value):
        if isinstance(value, str) and value.strip() != '*':
            return [o.strip() for o in value.split(',') if o.strip()]
        if isinstance(value, str):
            return '*'
        return value

    @field_validator('log_level')
    @classmethod
    def upper_log_level(cls, value):
        return value.upper()

    @classmethod
    def from_env(cls, **overrides):
        return cls(**overrides)
