"""
Catalog and customer lookups consumed by the order service.

Responsibility:
    Read-only views of medicines and customers, returned as DTOs.  The
    abstract classes are the seam to whatever owns the catalog; the SQL
    implementations read the kernel's own tables inside the current unit
    of work.

Architecture position:
    Kernel > Services.  OrderService receives lookup factories and builds
    one lookup per unit of work, so every read shares the unit of work's
    transaction.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from pharmacy_kernel.domain.dtos import CustomerInfo, MedicineInfo
from pharmacy_kernel.models.customer import Customer
from pharmacy_kernel.models.medicine import Medicine
from pharmacy_kernel.services.base import BaseService


class CatalogLookup(ABC):
    """Source of medicine data (price inputs, active flag)."""

    @abstractmethod
    def get_medicine(self, medicine_id: UUID) -> MedicineInfo | None:
        """Return the medicine, or None if it does not exist."""
        ...


class CustomerLookup(ABC):
    """Source of customer data."""

    @abstractmethod
    def get_customer(self, customer_id: UUID) -> CustomerInfo | None:
        """Return the customer, or None if it does not exist."""
        ...


class SqlCatalogLookup(BaseService, CatalogLookup):
    """CatalogLookup over the ``medicines`` table."""

    def get_medicine(self, medicine_id: UUID) -> MedicineInfo | None:
        medicine = self.session.execute(
            select(Medicine).where(Medicine.id == medicine_id)
        ).scalar_one_or_none()
        if medicine is None:
            return None
        return MedicineInfo(
            id=medicine.id,
            sku=medicine.sku,
            name=medicine.name,
            unit_price=medicine.unit_price,
            tax_rate=medicine.tax_rate if medicine.tax_rate is not None else Decimal("0"),
            discount_percentage=(
                medicine.discount_percentage
                if medicine.discount_percentage is not None
                else Decimal("0")
            ),
            prescription_required=medicine.prescription_required,
            is_active=medicine.is_active,
        )


class SqlCustomerLookup(BaseService, CustomerLookup):
    """CustomerLookup over the ``customers`` table."""

    def get_customer(self, customer_id: UUID) -> CustomerInfo | None:
        customer = self.session.execute(
            select(Customer).where(Customer.id == customer_id)
        ).scalar_one_or_none()
        if customer is None:
            return None
        return CustomerInfo(
            id=customer.id,
            customer_code=customer.customer_code,
            name=customer.name,
            email=customer.email,
            is_active=customer.is_active,
        )
