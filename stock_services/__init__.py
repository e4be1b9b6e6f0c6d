"""
stock_services -- facades that own transactions over the stock kernel.

    InventoryService        movements, catalog edits, stock reads
    StockLedgerService      single writer of variant stock positions
    ReportingService        profitability, movement report, valuation
    ReconciliationService   parent/child reconciliation guard
"""

from stock_services.inventory_service import InventoryService
from stock_services.reconciliation_service import (
    CHILD_KINDS,
    ChildKind,
    ReconciliationResult,
    ReconciliationService,
)
from stock_services.reporting_service import (
    MovementReportFilters,
    ProfitabilityFilters,
    ReportingService,
)
from stock_services.stock_ledger_service import PreparedMovement, StockLedgerService

__all__ = [
    "CHILD_KINDS",
    "ChildKind",
    "InventoryService",
    "MovementReportFilters",
    "PreparedMovement",
    "ProfitabilityFilters",
    "ReconciliationResult",
    "ReconciliationService",
    "ReportingService",
    "StockLedgerService",
]
