"""ORM models for the pharmacy kernel."""

from pharmacy_kernel.models.audit_record import AuditRecord
from pharmacy_kernel.models.customer import Customer
from pharmacy_kernel.models.inventory import InventoryRecord
from pharmacy_kernel.models.medicine import Medicine
from pharmacy_kernel.models.order import Order, OrderItem

__all__ = [
    "AuditRecord",
    "Customer",
    "InventoryRecord",
    "Medicine",
    "Order",
    "OrderItem",
]
