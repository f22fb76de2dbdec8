#!/usr/bin/env python
"""
Import historical sale prices for one client from a CSV or Excel file.

Usage:
    python scripts/import_history.py <client_id> <file> [source]
"""
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from client_pricing.adapters.import_adapter import CsvPriceRecordAdapter
from client_pricing.api.state import load_services
from client_pricing.config.logging_config import setup_logging
from client_pricing.config.settings import get_settings
from client_pricing.errors import PricingError, StoreUnavailable


def main():
    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(2)

    client_id, path = sys.argv[1], Path(sys.argv[2])
    source = sys.argv[3] if len(sys.argv) > 3 else 'csv'

    settings = get_settings()
    setup_logging(settings.log_level)

    print("=" * 60)
    print(f"HISTORICAL PRICE IMPORT - {client_id}")
    print("=" * 60)

    adapter = CsvPriceRecordAdapter(path)
    problems = adapter.validate()
    if problems:
        print(f"\n⚠️  {len(problems)} row problems (these rows will be skipped):")
        for problem in problems[:20]:
            print(f"  {problem}")

    services = load_services(settings)
    try:
        result = services.importer.process_import(client_id, adapter.load(), source=source)
    except StoreUnavailable as e:
        print(f"\n❌ STORE UNAVAILABLE: {e}")
        if e.partial_result is not None:
            print(f"  Committed before failure: {e.partial_result.imported_count} prices")
        sys.exit(1)
    except PricingError as e:
        print(f"\n❌ IMPORT REJECTED: {e}")
        sys.exit(1)

    print()
    print(f"  Imported:      {result.imported_count}")
    print(f"  Rules created: {result.pricing_rules_created_count}")
    print(f"  Skipped:       {result.skipped_count}")
    for failure in result.failures:
        print(f"  ❌ {failure}")
    print()
    print("✅ IMPORT COMPLETE" if result.success else "⚠️  IMPORT COMPLETE WITH FAILED BATCHES")


if __name__ == "__main__":
    main()
