"""
Pharmacy Kernel - order lifecycle and inventory consistency core.

Provides:
- Atomic stock reservation and release against a per-medicine ledger
- A strict order-status state machine
- Unit-of-work transactions with bounded retry on serialization conflicts
- Append-only audit records for every inventory and order mutation
"""

__version__ = "0.1.0"
