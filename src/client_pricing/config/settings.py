"""
Centralized settings and path configuration for the pricing engine.
"""
import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class TierDefinition:
    """A customer class sharing one list-price schedule per product."""
    id: str
    name: str
    default_discount: float = 0.0

    def to_dict(self) -> dict:
        return {'id': self.id, 'name': self.name, 'defaultDiscount': self.default_discount}


DEFAULT_TIERS = (
    TierDefinition('tier_0', 'Public', 0),
    TierDefinition('tier_1', 'End User', 5),
    TierDefinition('tier_2', 'System Integrator', 15),
    TierDefinition('tier_3', 'Trader', 25),
    TierDefinition('tier_4', 'VIP Distributor', 35),
)


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to 3 levels up from this file
    return Path(__file__).resolve().parent.parent.parent.parent


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Project paths
    project_root: Path
    data_dir: Path

    # Catalog inputs
    products_csv: Path
    clients_csv: Path

    # Rule/ledger store (JSON document)
    store_path: Path

    # Upper bound on record writes per atomic transaction
    max_batch_writes: int = 500

    # Optional tier consulted after the client's own tier, before catalog price
    public_tier_id: Optional[str] = None

    # Audit identities
    default_modified_by: str = 'admin_user'
    import_user: str = 'system_import'

    tiers: tuple = field(default=DEFAULT_TIERS)

    log_level: str = 'INFO'

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> 'Settings':
        """Load settings from the project structure and environment."""
        root = project_root or get_project_root()

        data_dir = Path(os.getenv('CLIENT_PRICING_DATA_DIR', root / 'data'))
        store_path = Path(os.getenv('CLIENT_PRICING_STORE_PATH', data_dir / 'pricing_store.json'))

        return cls(
            project_root=root,
            data_dir=data_dir,
            products_csv=data_dir / 'products.csv',
            clients_csv=data_dir / 'clients.csv',
            store_path=store_path,
            max_batch_writes=int(os.getenv('CLIENT_PRICING_MAX_BATCH_WRITES', '500')),
            public_tier_id=os.getenv('CLIENT_PRICING_PUBLIC_TIER') or None,
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        )

    def get_tier(self, tier_id: str) -> Optional[TierDefinition]:
        """Look up a configured tier by id."""
        for tier in self.tiers:
            if tier.id == tier_id:
                return tier
        return None


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings
