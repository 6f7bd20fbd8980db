"""
Módulo de acceso a datos para Appmax-Shopify Sync.

- ConnDB: Gestión exclusiva de conexiones a la base local
- Repositorios: cola de sincronización y relación de pedidos
- ShopifyOrderClient: API REST de pedidos de Shopify
"""

from appmax_sync.db.connection import ConnDB

__all__ = ["ConnDB"]
