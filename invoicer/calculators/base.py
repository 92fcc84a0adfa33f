"""
Abstract base class for all service calculators.

Input: raw form fields dict (strings or numbers, as submitted)
Output: {"calculator": key, "result": {...}, "line_item": {...}}

Parsing is strict. A blank or malformed required field raises one of the
CalculatorError subclasses below instead of silently becoming 0.
"""

import logging
import math
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class CalculatorError(ValueError):
    """Local validation failure. Never retryable."""
    code = "calculator_error"

    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field


class InvalidDimensions(CalculatorError):
    code = "invalid_dimensions"


class MissingSelection(CalculatorError):
    code = "missing_selection"


class InvalidPriceBounds(CalculatorError):
    code = "invalid_price_bounds"


class BaseCalculator(ABC):
    """All service calculators inherit from this."""

    key = ""

    @abstractmethod
    def calculate(self, fields: dict) -> dict:
        """
        Takes the submitted form fields.
        Returns the calculation result plus a suggested line item.
        """
        pass

    # --- Helper methods for all calculators ---

    def _is_blank(self, value) -> bool:
        return value is None or (isinstance(value, str) and not value.strip())

    def parse_number(self, fields: dict, name: str, default: float = None,
                     error=InvalidDimensions) -> float:
        """
        Parse a numeric field. Falls back to `default` only when the field is
        absent or blank; garbage raises `error`.
        """
        value = fields.get(name)
        if self._is_blank(value):
            if default is None:
                raise error("%s is required" % name, field=name)
            return default
        try:
            number = float(str(value).strip().rstrip("'\"").replace(",", "").lstrip("$"))
        except (ValueError, TypeError):
            raise error("%s must be a number, got %r" % (name, value), field=name)
        if not math.isfinite(number):
            raise error("%s must be finite" % name, field=name)
        return number

    def parse_choice(self, fields: dict, name: str, choices: dict, default=None):
        """
        Map a selection to its canonical value via `choices` (lower-cased alias -> value).
        Raises MissingSelection when absent (and no default) or unrecognised.
        """
        value = fields.get(name)
        if self._is_blank(value):
            if default is None:
                raise MissingSelection("%s is required" % name, field=name)
            return default
        canonical = choices.get(str(value).strip().lower())
        if canonical is None:
            raise MissingSelection(
                "%s must be one of %s, got %r" % (name, sorted(set(str(c) for c in choices.values())), value),
                field=name,
            )
        return canonical

    def require_positive(self, value: float, name: str, error=InvalidDimensions) -> float:
        if not math.isfinite(value) or value <= 0:
            raise error("%s must be greater than 0, got %s" % (name, value), field=name)
        return value

    def make_line_item(self, description: str, quantity: float, unit: str,
                       unit_price: float, details: dict = None) -> dict:
        """Build a line-item suggestion the document service can store as-is."""
        return {
            "description": description,
            "service_type": self.key,
            "quantity": quantity,
            "unit": unit,
            "unit_price": round(unit_price, 2),
            "amount": round(quantity * unit_price, 2),
            "details": details,
        }
