"""
Client Pricing Package

Resolves the authoritative unit price for a product, client and quantity.
Reconciles tier list pricing, negotiated client overrides and prices derived
from historical sales: Client Rule → Tier Rule → Catalog base price.
"""

__version__ = "1.0.0"
