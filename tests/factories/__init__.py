"""
Test factories for generating realistic test data.

Uses factory_boy for declarative test data generation.
"""

from .catalog import ProductFactory, WarehouseFactory, ShelfFactory
from .actor import (
    EmployeeFactory,
    AdminUserFactory,
    TokenClaimsFactory,
    AdminTokenClaimsFactory,
)

__all__ = [
    "ProductFactory",
    "WarehouseFactory",
    "ShelfFactory",
    # Actors
    "EmployeeFactory",
    "AdminUserFactory",
    "TokenClaimsFactory",
    "AdminTokenClaimsFactory",
]
