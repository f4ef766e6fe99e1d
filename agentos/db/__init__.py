"""
Módulo de acceso a datos del back-office.

- ConnDB: Gestión del engine y las sesiones de la base local
- Repositorios: SQL explícito por agregado (pedidos, agentes, clientes, comisiones)
- ShopifyClient: Cliente REST de Shopify
"""

from agentos.db.connection import ConnDB
from agentos.db.shopify_client import ShopifyClient

__all__ = ["ConnDB", "ShopifyClient"]
