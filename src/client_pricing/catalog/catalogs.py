"""
Catalog Accessors - read-only product and client lookups.

Both catalogs are held as pandas DataFrames indexed by id, loaded from CSV
exports (or from in-memory records for tests and scripts). Headers are
normalized so ERP exports with "Product ID" / "Base Price" style columns load
without a mapping step.
"""
import logging
import re
from pathlib import Path
from typing import Iterable, Optional

import pandas as pd

from ..engine.models import Client, Product
from ..errors import NotFoundError

logger = logging.getLogger(__name__)


def _normalize_header(name: str) -> str:
    return re.sub(r'[\s_\-]', '', str(name).strip().lower())


def _clean(value):
    """NaN/empty → None, strings stripped."""
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _parse_bool(value) -> bool:
    value = _clean(value)
    if value is None:
        return True
    if isinstance(value, str):
        return value.lower() in ('true', '1', 'yes', 'y', 'active')
    return bool(value)


class ProductCatalog:
    """Product lookup by id or code, and filtered listing by category."""

    HEADER_MAP = {
        'id': 'id',
        'productid': 'id',
        'sku': 'id',
        'code': 'code',
        'productcode': 'code',
        'name': 'name',
        'description': 'name',
        'baseprice': 'base_price',
        'price': 'base_price',
        'msrp': 'base_price',
        'category': 'category',
    }

    def __init__(self, df: pd.DataFrame):
        df = df.rename(columns=lambda c: self.HEADER_MAP.get(_normalize_header(c), c))
        for col in ('id', 'base_price'):
            if col not in df.columns:
                raise ValueError(f"Product catalog is missing required column '{col}'")
        for col in ('code', 'name', 'category'):
            if col not in df.columns:
                df[col] = None

        df = df[['id', 'code', 'name', 'base_price', 'category']].copy()
        df['id'] = df['id'].astype(str).str.strip()
        df['base_price'] = pd.to_numeric(df['base_price'], errors='coerce')

        missing_price = df['base_price'].isna() | df['id'].isin(['', 'nan', 'None'])
        if missing_price.any():
            logger.warning("Dropping %d catalog rows without id or base price", int(missing_price.sum()))
            df = df[~missing_price]

        duplicates = df['id'].duplicated()
        if duplicates.any():
            logger.warning("Dropping %d duplicate product ids (kept first)", int(duplicates.sum()))
            df = df[~duplicates]

        self.df = df.set_index('id', drop=False)

    @classmethod
    def from_csv(cls, path: Path) -> 'ProductCatalog':
        """Load the catalog from a CSV export."""
        if not path.exists():
            raise FileNotFoundError(f"Product catalog not found at {path}.")
        return cls(pd.read_csv(path, dtype=str))

    @classmethod
    def from_records(cls, records: Iterable[dict]) -> 'ProductCatalog':
        """Build the catalog from dict rows."""
        df = pd.DataFrame(list(records))
        if df.empty:
            df = pd.DataFrame(columns=['id', 'base_price'])
        return cls(df)

    def __len__(self) -> int:
        return len(self.df)

    def __contains__(self, product_id) -> bool:
        return str(product_id) in self.df.index

    def _to_product(self, row) -> Product:
        return Product(
            id=str(row['id']),
            base_price=float(row['base_price']),
            category=_clean(row['category']),
            code=_clean(row['code']),
            name=_clean(row['name']),
        )

    def get(self, product_id: str) -> Optional[Product]:
        """Get a product by id, or None."""
        if product_id is None:
            return None
        product_id = str(product_id).strip()
        if product_id not in self.df.index:
            return None
        return self._to_product(self.df.loc[product_id])

    def require(self, product_id: str) -> Product:
        """Get a product by id or raise NotFoundError."""
        product = self.get(product_id)
        if product is None:
            raise NotFoundError(f"Product '{product_id}' not found in catalog")
        return product

    def find(self, id_or_code: str) -> Optional[Product]:
        """Get a product by id, falling back to its product code."""
        product = self.get(id_or_code)
        if product is not None or id_or_code is None:
            return product
        match = self.df[self.df['code'] == str(id_or_code).strip()]
        if match.empty:
            return None
        return self._to_product(match.iloc[0])

    def list(self, category: Optional[str] = None, product_ids: Optional[Iterable[str]] = None) -> list[Product]:
        """List products, optionally filtered by category and/or an id subset."""
        df = self.df
        if category:
            df = df[df['category'] == category]
        if product_ids is not None:
            wanted = {str(p).strip() for p in product_ids}
            df = df[df['id'].isin(wanted)]
        return [self._to_product(row) for _, row in df.iterrows()]

    def categories(self) -> 'list[str]':
        return sorted(c for c in self.df['category'].dropna().unique())


class ClientRegistry:
    """Client lookup by id."""

    HEADER_MAP = {
        'id': 'id',
        'clientid': 'id',
        'name': 'name',
        'clientname': 'name',
        'defaulttierid': 'default_tier_id',
        'defaulttier': 'default_tier_id',
        'tierid': 'default_tier_id',
        'tier': 'default_tier_id',
        'isactive': 'is_active',
        'active': 'is_active',
    }

    def __init__(self, df: pd.DataFrame):
        df = df.rename(columns=lambda c: self.HEADER_MAP.get(_normalize_header(c), c))
        if 'id' not in df.columns:
            raise ValueError("Client registry is missing required column 'id'")
        for col in ('name', 'default_tier_id', 'is_active'):
            if col not in df.columns:
                df[col] = None

        df = df[['id', 'name', 'default_tier_id', 'is_active']].copy()
        df['id'] = df['id'].astype(str).str.strip()
        df = df[~df['id'].isin(['', 'nan', 'None'])]
        df = df.drop_duplicates('id')
        self.df = df.set_index('id', drop=False)

    @classmethod
    def from_csv(cls, path: Path) -> 'ClientRegistry':
        """Load the registry from a CSV export."""
        if not path.exists():
            raise FileNotFoundError(f"Client registry not found at {path}.")
        return cls(pd.read_csv(path, dtype=str))

    @classmethod
    def from_records(cls, records: Iterable[dict]) -> 'ClientRegistry':
        df = pd.DataFrame(list(records))
        if df.empty:
            df = pd.DataFrame(columns=['id'])
        return cls(df)

    def __len__(self) -> int:
        return len(self.df)

    def __contains__(self, client_id) -> bool:
        return str(client_id) in self.df.index

    def _to_client(self, row) -> Client:
        return Client(
            id=str(row['id']),
            default_tier_id=_clean(row['default_tier_id']),
            name=_clean(row['name']),
            is_active=_parse_bool(row['is_active']),
        )

    def get(self, client_id: str) -> Optional[Client]:
        """Get a client by id, or None."""
        if client_id is None:
            return None
        client_id = str(client_id).strip()
        if client_id not in self.df.index:
            return None
        return self._to_client(self.df.loc[client_id])

    def require(self, client_id: str) -> Client:
        """Get a client by id or raise NotFoundError."""
        client = self.get(client_id)
        if client is None:
            raise NotFoundError(f"Client '{client_id}' not found")
        return client

    def list(self, active_only: bool = False) -> list[Client]:
        clients = [self._to_client(row) for _, row in self.df.iterrows()]
        if active_only:
            clients = [c for c in clients if c.is_active]
        return clients
