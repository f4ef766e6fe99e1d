"""
Modelos Pydantic para los cuerpos de request de la API del back-office.

Los campos aceptan camelCase (como los envía el dashboard) y snake_case.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


class AssignOrderRequest(CamelModel):
    """Body de POST /api/shopify/orders/{id}/assign."""

    agent_id: str = Field(..., min_length=1, description="Agente al que se asigna el pedido")
    assigned_by: Optional[str] = Field(None, description="Usuario que asigna (por defecto el autenticado)")
    expected_version: Optional[int] = Field(None, ge=0, description="Versión de asignación leída por el cliente")


class SimulateRequest(CamelModel):
    agent_id: Optional[str] = Field(None, description="Agente a simular (todos los pedidos si se omite)")


class CalculateRequest(CamelModel):
    order_id: str = Field(..., min_length=1)
    agent_id: str = Field(..., min_length=1)


class CreateAgentRequest(CamelModel):
    """Body de POST /api/agents."""

    id: str = Field(..., min_length=1, max_length=64, description="Identificador del agente, p.ej. AGT-001")
    name: str = Field(..., min_length=1, max_length=120)
    email: Optional[str] = Field(None, max_length=254)
    territory: Optional[str] = Field(None, max_length=80)
    active: bool = True

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        """Validación mínima de formato de email."""
        if v and "@" not in v:
            raise ValueError("Email inválido")
        return v or None


class TokenRequest(CamelModel):
    user_id: str = Field(..., min_length=1, description="ID de agente o de administrador")


class SyncOrdersRequest(CamelModel):
    limit: int = Field(100, ge=1, le=1000, description="Máximo de pedidos a sincronizar")


class CreateWebhookRequest(CamelModel):
    """Body de POST /api/shopify/webhooks."""

    topic: str = Field(..., min_length=1, description="Topic de Shopify, p.ej. orders/create")
    address: str = Field(..., min_length=1, description="URL pública que recibirá el webhook")

    @field_validator("address")
    @classmethod
    def validate_address(cls, v):
        if not v.startswith("https://"):
            raise ValueError("La dirección del webhook debe usar HTTPS")
        return v
