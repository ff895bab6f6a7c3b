"""Marketplace connectors for ML Seller Sync"""

from app.connectors.base_connector import BaseConnector
from app.connectors.mercado_livre_connector import MercadoLivreConnector

__all__ = [
    "BaseConnector",
    "MercadoLivreConnector",
]
