"""
Custom-priced services: masonry work and anything quoted by hand.
"""

from .base import BaseCalculator, InvalidPriceBounds, MissingSelection


class CustomServiceCalculator(BaseCalculator):

    key = "custom_service"

    def calculate(self, fields: dict) -> dict:
        description = str(fields.get("description") or "").strip()
        if not description:
            raise MissingSelection("description is required", field="description")

        quantity = self.require_positive(self.parse_number(fields, "quantity", default=1.0), "quantity")
        unit_price = self.parse_number(fields, "unit_price", error=InvalidPriceBounds)
        if unit_price < 0:
            raise InvalidPriceBounds("unit_price must not be negative", field="unit_price")
        unit = str(fields.get("unit") or "job").strip()

        line_item = self.make_line_item(description, quantity, unit, unit_price)
        return {
            "calculator": self.key,
            "result": {
                "quantity": quantity,
                "unit": unit,
                "unit_price": line_item["unit_price"],
                "amount": line_item["amount"],
            },
            "line_item": line_item,
        }
