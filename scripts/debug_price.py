"""
Print the resolution trace for a product, optionally for a client and quantity.

Usage:
    python scripts/debug_price.py <product_id> [client_id] [quantity]
"""
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from client_pricing.api.state import load_services


def debug():
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(2)

    product_id = sys.argv[1]
    client_id = sys.argv[2] if len(sys.argv) > 2 else None
    quantity = int(sys.argv[3]) if len(sys.argv) > 3 else 1

    services = load_services()

    print(f"--- Resolving {product_id} x{quantity} for {client_id or 'no client'} ---")
    resolution = services.resolver.resolve(product_id, quantity, client_id=client_id)
    print(resolution.get_trace_text())
    print(f"\nUnit price: ${resolution.unit_price:.2f} ({resolution.source})")
    print(f"Extended:   ${resolution.extended_price:.2f}")

    if client_id:
        print("\nRecent sales:")
        for row in services.reports.get_client_price_history(client_id, product_id=product_id):
            print(f"  {row['soldDate']}  ${row['price']:.2f} x{row['quantity']}  {row['orderId'] or ''}")


if __name__ == "__main__":
    debug()
