"""Utility functions for the pharmacy kernel."""

from pharmacy_kernel.utils.serialization import json_safe

__all__ = ["json_safe"]
