"""Catalog subpackage - read-only product and client accessors."""
from .catalogs import ClientRegistry, ProductCatalog

__all__ = ['ClientRegistry', 'ProductCatalog']
