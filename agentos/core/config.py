"""
Configuración centralizada de la aplicación.

Este módulo maneja todas las variables de entorno y configuraciones
de la aplicación usando Pydantic Settings para validación automática.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Configuración de la aplicación usando Pydantic Settings.

    Todas las configuraciones se cargan desde variables de entorno
    con valores por defecto apropiados para desarrollo.
    """

    # === CONFIGURACIÓN BÁSICA DE LA APP ===
    APP_NAME: str = "AgentOS Back-Office API"
    APP_VERSION: str = "0.1.0"
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=True)

    # === CONFIGURACIÓN DEL SERVIDOR ===
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=3001)
    WORKERS: int = Field(default=1)
    LOG_LEVEL: str = Field(default="INFO")

    # === CONFIGURACIÓN DE SEGURIDAD ===
    ALLOWED_HOSTS: Optional[List[str]] = Field(default=None)
    SECRET_KEY: str = Field(default="dev-secret-key-change-in-production")
    ENABLE_API_AUTH: bool = Field(default=False)
    SESSION_TOKEN_TTL_HOURS: int = Field(default=24)
    ADMIN_USER_IDS: List[str] = Field(default_factory=lambda: ["admin"])

    # === CONFIGURACIÓN DE BASE DE DATOS ===
    DATABASE_URL: str = Field(default="sqlite+aiosqlite:///./agentos.db")
    DATABASE_ECHO: bool = Field(default=False)

    # === CONFIGURACIÓN DE SHOPIFY ===
    SHOPIFY_SHOP_URL: str = Field(default="your-shop.myshopify.com")
    SHOPIFY_ACCESS_TOKEN: str = Field(default="your-access-token")
    SHOPIFY_API_VERSION: str = Field(default="2023-10")
    SHOPIFY_WEBHOOK_SECRET: Optional[str] = Field(default=None)
    SHOPIFY_MAX_CONCURRENT_REQUESTS: int = Field(default=2)
    SHOPIFY_REQUEST_TIMEOUT: int = Field(default=30)
    SHOPIFY_MAX_RETRIES: int = Field(default=3)

    # === CONFIGURACIÓN DE WEBHOOKS ===
    ENABLE_WEBHOOKS: bool = Field(default=True)
    WEBHOOK_RETRY_MAX_ATTEMPTS: int = Field(default=5)
    WEBHOOK_RETRY_BASE_DELAY: float = Field(default=2.0)
    WEBHOOK_RETRY_MAX_DELAY: float = Field(default=300.0)

    # === CONFIGURACIÓN DE COMISIONES ===
    CURRENCY: str = Field(default="MYR")
    COMMISSION_DEFAULT_RATE: Decimal = Field(default=Decimal("0.05"))
    # JSON en el entorno: {"SKU-123": "0.02", "8012345": "0.015"}
    COMMISSION_PRODUCT_BONUSES: Dict[str, Decimal] = Field(default_factory=dict)

    # === CONFIGURACIÓN DE LOGGING ===
    LOG_FILE_PATH: Optional[str] = Field(default="logs/app.log")
    LOG_MAX_SIZE_MB: int = Field(default=10)
    LOG_BACKUP_COUNT: int = Field(default=5)

    # === CONFIGURACIÓN DE MONITOREO ===
    SLOW_REQUEST_THRESHOLD: float = Field(default=5.0)

    # === CONFIGURACIÓN DE DOCUMENTACIÓN ===
    ENABLE_DOCS: bool = Field(default=True)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "allow",
    }

    @field_validator("ALLOWED_HOSTS", "ADMIN_USER_IDS", mode="before")
    @classmethod
    def parse_comma_separated(cls, v):
        """Parsea listas separadas por comas."""
        if isinstance(v, str) and not v.strip().startswith("["):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("SHOPIFY_SHOP_URL")
    @classmethod
    def validate_shopify_url(cls, v):
        """Valida que la URL de Shopify tenga el formato correcto."""
        if v in ["your-shop.myshopify.com"]:
            return v
        host = v.replace("https://", "").replace("http://", "").rstrip("/")
        if not host.endswith(".myshopify.com"):
            raise ValueError("SHOPIFY_SHOP_URL debe terminar en .myshopify.com")
        return host

    @field_validator("COMMISSION_DEFAULT_RATE")
    @classmethod
    def validate_default_rate(cls, v):
        """La tasa base debe ser una fracción entre 0 y 1."""
        if not Decimal("0") <= v <= Decimal("1"):
            raise ValueError("COMMISSION_DEFAULT_RATE debe estar entre 0 y 1")
        return v

    @field_validator("COMMISSION_PRODUCT_BONUSES")
    @classmethod
    def validate_product_bonuses(cls, v):
        """Cada bono por producto debe ser una fracción entre 0 y 1."""
        for key, rate in v.items():
            if not Decimal("0") <= rate <= Decimal("1"):
                raise ValueError(f"Bono para '{key}' fuera de rango (0-1): {rate}")
        return v

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

    @field_validator("PORT")
    @classmethod
    def validate_port(cls, v):
        """Valida que el puerto esté en rango válido."""
        if not 1 <= v <= 65535:
            raise ValueError("PORT debe estar entre 1 y 65535")
        return v

    @property
    def is_production(self) -> bool:
        """Verifica si está en entorno de producción."""
        return self.ENVIRONMENT == "production"

    @property
    def shopify_admin_base_url(self) -> str:
        """URL base de la API REST de administración de Shopify."""
        return f"https://{self.SHOPIFY_SHOP_URL}/admin/api/{self.SHOPIFY_API_VERSION}"

    @property
    def is_shopify_configured(self) -> bool:
        """Indica si hay credenciales reales de Shopify."""
        return self.SHOPIFY_SHOP_URL != "your-shop.myshopify.com" and self.SHOPIFY_ACCESS_TOKEN != "your-access-token"


@lru_cache()
def get_settings() -> Settings:
    """
    Obtiene la instancia de configuración (singleton con cache).

    Returns:
        Settings: Configuración de la aplicación
    """
    return Settings()


def get_environment_info(settings: Optional[Settings] = None) -> dict:
    """
    Obtiene información del entorno actual.

    Returns:
        dict: Información del entorno
    """
    settings = settings or get_settings()

    return {
        "app_name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "debug": settings.DEBUG,
        "features": {
            "webhooks": settings.ENABLE_WEBHOOKS,
            "api_auth": settings.ENABLE_API_AUTH,
            "shopify_configured": settings.is_shopify_configured,
            "webhook_signature": bool(settings.SHOPIFY_WEBHOOK_SECRET),
        },
    }
