"""
Import adapters - turn uploaded sales files into PriceRecords.

File parsing stays here; the import processor only ever sees PriceRecord
objects. Row-level problems are reported by ``validate()`` but rows are not
dropped, so the processor's own skip counting stays authoritative.
"""
import logging
import re
from pathlib import Path
from typing import Protocol

import pandas as pd

from ..engine.models import PriceRecord, parse_date

logger = logging.getLogger(__name__)

# Normalized header -> PriceRecord field
COLUMN_MAP = {
    'productid': 'product_id',
    'product': 'product_id',
    'productcode': 'product_id',
    'sku': 'product_id',
    'price': 'price',
    'unitprice': 'price',
    'soldprice': 'price',
    'quantity': 'quantity',
    'qty': 'quantity',
    'solddate': 'sold_date',
    'date': 'sold_date',
    'orderid': 'order_id',
    'ordernumber': 'order_id',
    'contractref': 'contract_ref',
    'contract': 'contract_ref',
    'originalprice': 'original_price',
    'listprice': 'original_price',
    'notes': 'notes',
}

REQUIRED_COLUMNS = ('product_id', 'price')


def _normalize_header(name: str) -> str:
    return re.sub(r'[\s_\-]', '', str(name).strip().lower())


class PriceRecordAdapter(Protocol):
    """Anything that can hand historical sales to the import processor."""

    def load(self) -> list[PriceRecord]:
        ...


class CsvPriceRecordAdapter:
    """Reads historical sales from a .csv or .xlsx file."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._df = None

    def _read(self) -> pd.DataFrame:
        if self._df is not None:
            return self._df
        if not self.path.exists():
            raise FileNotFoundError(f"Import file not found at {self.path}")

        if self.path.suffix.lower() in ('.xlsx', '.xls'):
            df = pd.read_excel(self.path, dtype=str)
        else:
            df = pd.read_csv(self.path, dtype=str)

        df = df.rename(columns=lambda c: COLUMN_MAP.get(_normalize_header(c), c))
        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"Import file {self.path.name} is missing required columns: {missing}")
        for col in set(COLUMN_MAP.values()):
            if col not in df.columns:
                df[col] = None

        df = df.dropna(how='all')
        self._df = df
        logger.info("Read %d rows from %s", len(df), self.path)
        return df

    @staticmethod
    def _cell(value):
        if value is None or (not isinstance(value, str) and pd.isna(value)):
            return None
        value = str(value).strip()
        return value or None

    @classmethod
    def _number(cls, value):
        value = cls._cell(value)
        if value is None:
            return None
        number = pd.to_numeric(value, errors='coerce')
        return None if pd.isna(number) else float(number)

    def load(self) -> list[PriceRecord]:
        """Convert every row into a PriceRecord, coercing numbers where possible."""
        df = self._read()
        records = []
        for _, row in df.iterrows():
            quantity = self._number(row['quantity'])
            records.append(PriceRecord(
                product_id=self._cell(row['product_id']),
                price=self._number(row['price']),
                quantity=1 if quantity is None else int(quantity),
                sold_date=self._cell(row['sold_date']),
                order_id=self._cell(row['order_id']),
                contract_ref=self._cell(row['contract_ref']),
                original_price=self._number(row['original_price']),
                notes=self._cell(row['notes']),
            ))
        return records

    def validate(self) -> list[str]:
        """Human-readable problems per row (1-based, header excluded)."""
        problems = []
        for line, record in enumerate(self.load(), start=1):
            if not record.product_id:
                problems.append(f"Row {line}: missing product id")
            if record.price is None:
                problems.append(f"Row {line}: missing or non-numeric price")
            elif record.price <= 0:
                problems.append(f"Row {line}: price must be greater than 0")
            if record.quantity is not None and record.quantity < 1:
                problems.append(f"Row {line}: quantity must be at least 1")
            try:
                parse_date(record.sold_date)
            except ValueError:
                problems.append(f"Row {line}: sold date '{record.sold_date}' is not YYYY-MM-DD")
        return problems
