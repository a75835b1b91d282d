"""
Kernel services.

Services own the imperative shell: they open units of work through the
TransactionCoordinator, call pure domain functions, and return DTOs.
Only the coordinator commits.
"""

from pharmacy_kernel.services.audit_recorder import (
    AuditRecorder,
    AuditTrace,
    AuditTraceEntry,
)
from pharmacy_kernel.services.catalog import (
    CatalogLookup,
    CustomerLookup,
    SqlCatalogLookup,
    SqlCustomerLookup,
)
from pharmacy_kernel.services.inventory_ledger import InventoryLedger
from pharmacy_kernel.services.order_service import OrderService
from pharmacy_kernel.services.stock_service import StockService
from pharmacy_kernel.services.transaction_coordinator import (
    TransactionCoordinator,
    UnitOfWork,
    is_transient,
)

__all__ = [
    "AuditRecorder",
    "AuditTrace",
    "AuditTraceEntry",
    "CatalogLookup",
    "CustomerLookup",
    "InventoryLedger",
    "OrderService",
    "SqlCatalogLookup",
    "SqlCustomerLookup",
    "StockService",
    "TransactionCoordinator",
    "UnitOfWork",
    "is_transient",
]
