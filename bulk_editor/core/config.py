"""
Configuración centralizada de la aplicación.

Este módulo maneja todas las variables de entorno y configuraciones
de la aplicación usando Pydantic Settings para validación automática.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Configuración de la aplicación usando Pydantic Settings.

    Todas las configuraciones se cargan desde variables de entorno
    con valores por defecto apropiados para desarrollo.
    """

    # === CONFIGURACIÓN BÁSICA DE LA APP ===
    APP_NAME: str = "Catalog Bulk Editor"
    APP_VERSION: str = "0.1.0"
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: str = Field(default="INFO")

    # === CONFIGURACIÓN DE SHOPIFY ===
    SHOPIFY_SHOP_URL: str = Field(default="your-shop.myshopify.com")
    SHOPIFY_ACCESS_TOKEN: str = Field(default="your-access-token")
    SHOPIFY_API_VERSION: str = Field(default="2025-04")
    SHOPIFY_WEBHOOK_SECRET: Optional[str] = Field(default=None)
    SHOPIFY_REQUEST_TIMEOUT: int = Field(default=30)

    # === CONFIGURACIÓN DE BASE DE DATOS (operaciones) ===
    DATABASE_URL: str = Field(default="sqlite+aiosqlite:///./bulk_editor.db")
    DATABASE_ECHO: bool = Field(default=False)

    # === CONFIGURACIÓN DE RETRIES Y RATE LIMIT ===
    RETRY_MAX_RETRIES: int = Field(default=3)
    RETRY_INITIAL_DELAY: float = Field(default=1.0)
    RETRY_MAX_DELAY: float = Field(default=30.0)
    # Fracción del presupuesto bajo la cual se emite aviso
    RATE_LIMIT_LOW_BUDGET_RATIO: float = Field(default=0.2)
    # Puntos disponibles bajo los cuales se espera proactivamente
    RATE_LIMIT_FLOOR: int = Field(default=100)
    RATE_LIMIT_FLOOR_SLEEP: float = Field(default=2.0)

    # === CONFIGURACIÓN DE OPERACIONES BULK ===
    STALE_OPERATION_MINUTES: int = Field(default=60)
    RESULT_RETENTION_DAYS: int = Field(default=7)
    OPERATION_RETENTION_DAYS: int = Field(default=30)
    MAX_RECORDS_PER_JOB: int = Field(default=250)
    PREVIEW_VARIANTS_LIMIT: int = Field(default=50)

    # === CONFIGURACIÓN DE LIMPIEZA PROGRAMADA ===
    ENABLE_CLEANUP_SCHEDULE: bool = Field(default=False)
    CLEANUP_INTERVAL_MINUTES: int = Field(default=15)

    # === CONFIGURACIÓN DE LOGGING ===
    LOG_FILE_PATH: Optional[str] = Field(default=None)
    LOG_MAX_SIZE_MB: int = Field(default=10)
    LOG_BACKUP_COUNT: int = Field(default=5)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore",
    }

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Valida que el nivel de log sea válido."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL debe ser uno de: {valid_levels}")
        return v.upper()

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Valida que el entorno sea válido."""
        valid_envs = ["development", "staging", "production", "testing"]
        if v.lower() not in valid_envs:
            raise ValueError(f"ENVIRONMENT debe ser uno de: {valid_envs}")
        return v.lower()

    @field_validator("SHOPIFY_SHOP_URL")
    @classmethod
    def validate_shopify_url(cls, v):
        """Valida que la URL de Shopify tenga el formato correcto."""
        if v in ["your-shop.myshopify.com"]:
            return v
        host = v.replace("https://", "").replace("http://", "").rstrip("/")
        if not host.endswith(".myshopify.com"):
            raise ValueError("SHOPIFY_SHOP_URL debe terminar en .myshopify.com")
        return v

    @field_validator("RATE_LIMIT_LOW_BUDGET_RATIO")
    @classmethod
    def validate_budget_ratio(cls, v):
        """Valida que el ratio esté entre 0 y 1."""
        if not 0 < v < 1:
            raise ValueError("RATE_LIMIT_LOW_BUDGET_RATIO debe estar entre 0 y 1")
        return v

    @property
    def is_production(self) -> bool:
        """Verifica si está en entorno de producción."""
        return self.ENVIRONMENT == "production"

    @property
    def shop_domain(self) -> str:
        """Dominio de la tienda sin esquema."""
        return self.SHOPIFY_SHOP_URL.replace("https://", "").replace("http://", "").rstrip("/")


@lru_cache()
def get_settings() -> Settings:
    """
    Obtiene instancia singleton de configuración.

    Usa LRU cache para evitar recrear la configuración
    múltiples veces durante la ejecución.

    Returns:
        Settings: Instancia de configuración
    """
    return Settings()


def reload_settings() -> Settings:
    """
    Recarga la configuración (útil para testing).

    Returns:
        Settings: Nueva instancia de configuración
    """
    get_settings.cache_clear()
    return get_settings()


def get_environment_info() -> dict:
    """
    Obtiene información del entorno actual.

    Returns:
        dict: Información del entorno
    """
    settings = get_settings()

    return {
        "app_name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "debug": settings.DEBUG,
        "log_level": settings.LOG_LEVEL,
        "shop": settings.shop_domain,
        "api_version": settings.SHOPIFY_API_VERSION,
        "features": {
            "cleanup_schedule": settings.ENABLE_CLEANUP_SCHEDULE,
            "webhook_verification": bool(settings.SHOPIFY_WEBHOOK_SECRET),
        },
    }
