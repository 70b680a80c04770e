"""
Strategies package for the regen pool.

Re-exports the provider interfaces and the concrete acquisition and burn
providers so downstream code can import from `regen_pool.strategies` directly.
"""

from regen_pool.strategies.abstract import (
    AbstractAcquisitionProvider,
    AbstractBurnProvider,
    AcquisitionProvider,
    BurnProvider,
)
from regen_pool.strategies.acquisition import (
    DisabledAcquisitionProvider,
    LiveAcquisitionProvider,
    SimulatedAcquisitionProvider,
    available_acquisition_providers,
    create_acquisition_provider,
)
from regen_pool.strategies.burn import (
    DisabledBurnProvider,
    LiveBurnProvider,
    SimulatedBurnProvider,
    available_burn_providers,
    create_burn_provider,
)

__all__ = [
    # Abstracts
    "AbstractAcquisitionProvider",
    "AbstractBurnProvider",
    "AcquisitionProvider",
    "BurnProvider",
    # Concrete providers
    "DisabledAcquisitionProvider",
    "LiveAcquisitionProvider",
    "SimulatedAcquisitionProvider",
    "DisabledBurnProvider",
    "LiveBurnProvider",
    "SimulatedBurnProvider",
    # Registries
    "available_acquisition_providers",
    "create_acquisition_provider",
    "available_burn_providers",
    "create_burn_provider",
]
