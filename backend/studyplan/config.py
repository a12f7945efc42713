import os
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    debug_endpoints: bool = Field(False, alias="STUDYPLAN_DEBUG_ENDPOINTS")
    database_url: Optional[str] = Field(None, alias="STUDYPLAN_DATABASE_URL")
    database_pool_size: int = Field(10, alias="STUDYPLAN_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="STUDYPLAN_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="STUDYPLAN_DATABASE_ECHO")
    persistence_mode: Literal["database", "legacy"] = Field(
        "database",
        alias="STUDYPLAN_PERSISTENCE_MODE",
    )
    data_dir: Optional[str] = Field(None, alias="STUDYPLAN_DATA_DIR")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[arg-type]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid backend configuration: {exc}") from exc
