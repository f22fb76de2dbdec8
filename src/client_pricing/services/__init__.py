"""Services built on the rule store: historical import, bulk tier updates and reporting."""
from .bulk_tier_updater import BulkTierUpdater, StagedBulkUpdate
from .historical_import import HistoricalImportProcessor
from .reporting_service import PricingReportService

__all__ = ['BulkTierUpdater', 'StagedBulkUpdate', 'HistoricalImportProcessor', 'PricingReportService']
