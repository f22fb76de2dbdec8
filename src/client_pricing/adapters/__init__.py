"""Adapters that feed external data into the pricing core."""
from .import_adapter import CsvPriceRecordAdapter, PriceRecordAdapter

__all__ = ['CsvPriceRecordAdapter', 'PriceRecordAdapter']
