"""Database models for the ML seller sync service"""

from app.models.mercado_livre import (
    MLAccount,
    MLProduct,
    MLOrder,
    MLFullStock,
    MLMetrics,
    MLCampaign,
    MLProductAd,
    MLSellerRecovery,
    MLWebhookLog,
    MLAutoSyncLog,
)

from app.models.journey import Milestone

__all__ = [
    "MLAccount",
    "MLProduct",
    "MLOrder",
    "MLFullStock",
    "MLMetrics",
    "MLCampaign",
    "MLProductAd",
    "MLSellerRecovery",
    "MLWebhookLog",
    "MLAutoSyncLog",
    "Milestone",
]
