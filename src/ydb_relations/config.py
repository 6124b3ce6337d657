"""
Настройки ydb-relations (переменные окружения с префиксом YDB_RELATIONS_)
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RelationsSettings(BaseSettings):
    """Настройки библиотеки"""

    model_config = SettingsConfigDict(
        env_prefix="YDB_RELATIONS_", case_sensitive=False, env_file=".env", extra="ignore"
    )

    # Размер пачки для find_each_batch
    batch_size: int = Field(1000, ge=1)

    # Подключение к YDB
    ydb_endpoint: str = "grpc://localhost:2136"
    ydb_database: str = "/local"
    ydb_timeout: float = Field(5.0, gt=0)


_settings: Optional[RelationsSettings] = None


def get_settings() -> RelationsSettings:
    """Получение настроек (создаются при первом обращении)"""
    global _settings
    if _settings is None:
        _settings = RelationsSettings()
    return _settings


def reset_settings() -> None:
    """Сброс настроек, следующее обращение перечитает окружение"""
    global _settings
    _settings = None
