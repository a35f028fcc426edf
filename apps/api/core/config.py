"""
Configuración centralizada de la aplicación.
Lee todas las variables de entorno usando pydantic-settings.
NUNCA hardcodear valores sensibles aquí.
"""

from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Base de datos -------------------------------------------------------
    # URL asíncrona (asyncpg) para el servidor FastAPI
    DATABASE_URL: str

    # URL síncrona (psycopg2) usada exclusivamente por Alembic para migraciones
    DATABASE_SYNC_URL: str

    # --- Seguridad -----------------------------------------------------------
    # Contraseña compartida de administración (campo adminPassword en el body)
    ADMIN_PASSWORD: str

    # --- Aplicación ----------------------------------------------------------
    APP_ENV: str = "production"
    LOG_LEVEL: str = "INFO"

    # Orígenes CORS permitidos (cadena separada por comas)
    CORS_ORIGINS: str = "*"

    # --- Competición y actualización diaria ----------------------------------
    # Zona horaria que define el "día" de la competición (fechas del historial)
    REPORTING_TIMEZONE: str = "Asia/Bangkok"

    # Hora local (REPORTING_TIMEZONE) de la actualización diaria de volúmenes
    DAILY_UPDATE_HOUR: int = 7
    DAILY_UPDATE_MINUTE: int = 1

    # Permite desactivar el cron en tests o en réplicas secundarias
    SCHEDULER_ENABLED: bool = True

    # Pausa entre tokens durante el batch (límite de la API de Binance Alpha)
    BATCH_DELAY_SECONDS: float = 1.0

    # Timeout de cada llamada al fetcher; un token colgado no bloquea el batch
    FETCH_TIMEOUT_SECONDS: float = 20.0

    # URL base de la API pública de Binance Alpha
    BINANCE_ALPHA_BASE_URL: str = "https://www.binance.com"

    # --- Propiedades calculadas ----------------------------------------------
    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def reporting_tz(self) -> ZoneInfo:
        return ZoneInfo(self.REPORTING_TIMEZONE)

    @field_validator("APP_ENV")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        allowed = {"development", "production", "test"}
        if v not in allowed:
            raise ValueError(f"APP_ENV debe ser uno de: {allowed}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL debe ser uno de: {allowed}")
        return v.upper()

    @field_validator("REPORTING_TIMEZONE")
    @classmethod
    def validate_reporting_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"REPORTING_TIMEZONE desconocida: {v}") from exc
        return v

    @field_validator("DAILY_UPDATE_HOUR")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError("DAILY_UPDATE_HOUR debe estar entre 0 y 23")
        return v

    @field_validator("DAILY_UPDATE_MINUTE")
    @classmethod
    def validate_minute(cls, v: int) -> int:
        if not 0 <= v <= 59:
            raise ValueError("DAILY_UPDATE_MINUTE debe estar entre 0 y 59")
        return v

    @field_validator("BATCH_DELAY_SECONDS", "FETCH_TIMEOUT_SECONDS")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Los tiempos de espera no pueden ser negativos")
        return v


@lru_cache
def get_settings() -> Settings:
    """Instancia singleton de Settings, cacheada para evitar re-lecturas del .env."""
    return Settings()


# Exportación conveniente para importar directamente en otros módulos
settings: Settings = get_settings()
