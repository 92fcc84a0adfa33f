"""
Calculator registry. Maps calculator keys to calculator classes.
"""

from .base import BaseCalculator
from .concrete_leveling import ConcreteLevelingCalculator, PricingConfig
from .concrete_sqft import ConcreteSqftCalculator
from .custom_service import CustomServiceCalculator

CALCULATOR_REGISTRY: dict[str, type] = {
    "concrete_leveling": ConcreteLevelingCalculator,
    "concrete_sqft": ConcreteSqftCalculator,
    "custom_service": CustomServiceCalculator,
}


def get_calculator(key: str, config: PricingConfig = None) -> BaseCalculator:
    """Returns an instance of the calculator for a key, or raises ValueError."""
    if key not in CALCULATOR_REGISTRY:
        raise ValueError(
            f"No calculator registered for: {key}. "
            f"Available: {list(CALCULATOR_REGISTRY.keys())}"
        )
    cls = CALCULATOR_REGISTRY[key]
    if cls is ConcreteLevelingCalculator:
        return cls(config)
    return cls()


def has_calculator(key: str) -> bool:
    """Check if a calculator exists for a key."""
    return key in CALCULATOR_REGISTRY


def list_calculators() -> list[str]:
    """List all registered calculator keys."""
    return list(CALCULATOR_REGISTRY.keys())
