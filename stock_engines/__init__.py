"""
Module: stock_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines.  This is
    the import surface for stock_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import stock_kernel.db.types, stock_kernel.domain and
    stock_kernel.exceptions (and sibling engine modules).
    MUST NOT import stock_services.

Invariants enforced:
    - Purity: engines never read the clock.  Timestamps are passed in.
    - Decimal-only arithmetic for every cost, price and margin.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Every traced invocation emits a STOCK_ENGINE_TRACE log record with the
    engine name, version, input fingerprint and duration.
"""

from stock_engines.averaging import CostAveragingEngine, StockPosition
from stock_engines.movement_report import (
    DIRECTION_IN,
    DIRECTION_OUT,
    MovementReport,
    MovementReportEngine,
    MovementReportLine,
    MovementReportSummary,
)
from stock_engines.movement_validator import MovementValidator, ValidatedMovement
from stock_engines.pricing import (
    COST_DEVIATION_WARNING,
    UNDEFINED_COSTING_WARNING,
    CostDeviation,
    EditedField,
    PricingCalculator,
    PricingResult,
    PricingStatus,
)
from stock_engines.profitability import (
    DEFAULT_GROUP_BY,
    CostSource,
    GroupBy,
    ProfitabilityEngine,
    ProfitabilityGroup,
    ProfitabilityReport,
    ProfitabilityRow,
    ProfitabilityTotals,
    SaleLine,
)
from stock_engines.reconciliation import (
    ChildOp,
    DesiredChild,
    PersistedChild,
    PlannedOp,
    ReconciliationPlan,
    plan_reconciliation,
)
from stock_engines.tracer import compute_input_fingerprint, traced_engine
from stock_engines.valuation import (
    StockValuation,
    StockValuationEngine,
    ValuationGroup,
    ValuationLine,
)

__all__ = [
    # Averaging
    "CostAveragingEngine",
    "StockPosition",
    # Pricing
    "COST_DEVIATION_WARNING",
    "UNDEFINED_COSTING_WARNING",
    "CostDeviation",
    "EditedField",
    "PricingCalculator",
    "PricingResult",
    "PricingStatus",
    # Validation
    "MovementValidator",
    "ValidatedMovement",
    # Profitability
    "DEFAULT_GROUP_BY",
    "CostSource",
    "GroupBy",
    "ProfitabilityEngine",
    "ProfitabilityGroup",
    "ProfitabilityReport",
    "ProfitabilityRow",
    "ProfitabilityTotals",
    "SaleLine",
    # Movement report
    "DIRECTION_IN",
    "DIRECTION_OUT",
    "MovementReport",
    "MovementReportEngine",
    "MovementReportLine",
    "MovementReportSummary",
    # Valuation
    "StockValuation",
    "StockValuationEngine",
    "ValuationGroup",
    "ValuationLine",
    # Reconciliation
    "ChildOp",
    "DesiredChild",
    "PersistedChild",
    "PlannedOp",
    "ReconciliationPlan",
    "plan_reconciliation",
    # Tracing
    "compute_input_fingerprint",
    "traced_engine",
]
