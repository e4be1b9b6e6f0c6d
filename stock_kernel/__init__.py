"""
Stock Kernel - inventory cost-accounting core

An append-only stock ledger with:
- Weighted-average (PMP) unit cost per variant
- Optimistic, per-variant atomic movement application
- Immutable sale snapshots for historically accurate profit
- Full auditability via hash chain
"""

__version__ = "0.1.0"
