"""Engine subpackage - pricing models, price math and the resolver (import it from .price_resolver)."""
from .models import PriceResolution, PriceRecord, TierKey, ClientKey
from .price_math import compute_final_price

__all__ = ['PriceResolution', 'PriceRecord', 'TierKey', 'ClientKey', 'compute_final_price']
