"""
JSON file repository - the persistent store.

The whole state is one JSON document. Commits write a temp file next to the
target and ``os.replace`` it into place, so the file on disk is always either
the previous or the new committed state.
"""
import json
import logging
import os
import tempfile
from pathlib import Path

from ..errors import StoreUnavailable
from .repository import PricingRepository, PricingState

logger = logging.getLogger(__name__)


class JsonFilePricingRepository(PricingRepository):
    """Repository persisted to a single JSON document."""

    def __init__(self, path: Path):
        self.path = Path(path)
        super().__init__()

    def _load(self) -> PricingState:
        if not self.path.exists():
            logger.info("No pricing store at %s; starting empty", self.path)
            return PricingState()
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            state = PricingState.from_document(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise StoreUnavailable(f"Cannot read pricing store {self.path}: {e}") from e

        logger.info(
            "Loaded pricing store %s: %d tier rules, %d client rules, %d history records",
            self.path, len(state.tier_rules), len(state.client_rules), len(state.history)
        )
        return state

    def _persist(self, state: PricingState):
        document = state.to_document()
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix='.tmp', dir=str(self.path.parent)
            )
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(document, f, indent=2)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            raise StoreUnavailable(f"Cannot write pricing store {self.path}: {e}") from e
        finally:
            if tmp_name and os.path.exists(tmp_name):
                os.remove(tmp_name)
