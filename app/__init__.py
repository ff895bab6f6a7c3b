"""
ML Seller Sync - Mercado Livre account synchronization and metrics derivation
"""
__version__ = "1.0.0"
