"""
Domain exceptions raised by the pricing core.

The API layer translates these into HTTP status codes; services never
catch them to return error dicts.
"""
from typing import Optional


class PricingError(Exception):
    """Base class for all pricing engine errors."""


class ValidationError(PricingError):
    """Input rejected before any write (negative discount, quantity < 1, missing ids)."""


class NotFoundError(ValidationError):
    """Unknown product, client or rule. Nothing is persisted."""


class StoreUnavailable(PricingError):
    """Persistence could not be read or written. The failing transaction is not applied."""

    def __init__(self, message: str, partial_result=None):
        super().__init__(message)
        # Set by batched operations when earlier sub-batches already committed
        self.partial_result = partial_result


class PartialBatchFailure(PricingError):
    """
    One sub-batch of an import was skipped in full.

    Collected on the import result rather than raised, so callers always
    receive counts.
    """

    def __init__(self, batch_index: int, record_count: int, cause: Optional[Exception] = None):
        self.batch_index = batch_index
        self.record_count = record_count
        self.cause = cause
        reason = str(cause) if cause else "unknown error"
        super().__init__(f"Batch {batch_index} skipped ({record_count} records): {reason}")

    def to_dict(self) -> dict:
        return {
            "batchIndex": self.batch_index,
            "recordCount": self.record_count,
            "error": str(self.cause) if self.cause else None,
        }
